"""
factory.py - Stream Factory

StreamFactory owns the protocol parameters and the custody shared by its
streams. It is the only way to open a stream:

    1. Look up the native decimals of both assets from custody
    2. Build and validate the term sheet (create_stream)
    3. Pull the out supply from the creator into custody
    4. Register the new Stream under a monotonically increasing id
"""

from __future__ import annotations
import threading
from typing import Dict, List, Optional

from .config import ProtocolParams, StreamTerms
from .core import StreamError, StreamTimes
from .custody import AssetCustody
from .engine import create_stream
from .stream import Stream


class StreamFactory:
    """
    Creates and tracks streams that share one set of protocol parameters.

    Example:
        factory = StreamFactory(default_params("treasury"), custody)
        stream = factory.create_stream(
            creator="creator", in_asset="USDC", out_asset="TOKEN",
            out_supply=10_000, bootstrapping_start=1_500, stream_start=7_500,
            stream_end=107_500, now=1_000,
        )
    """

    def __init__(self, params: ProtocolParams, custody: AssetCustody, verbose: bool = False):
        if not isinstance(custody, AssetCustody):
            raise TypeError("custody must implement the AssetCustody protocol")
        self.params = params
        self.custody = custody
        self.verbose = verbose
        self._streams: Dict[int, Stream] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create_stream(
        self,
        creator: str,
        in_asset: str,
        out_asset: str,
        out_supply: int,
        bootstrapping_start: int,
        stream_start: int,
        stream_end: int,
        now: int,
        threshold: int = 0,
    ) -> Stream:
        """
        Open a new stream funded with ``out_supply`` of ``out_asset``.

        Raises:
            ValidationError: if the terms violate ordering or minimum durations.
            AssetNotRegistered: if custody does not know either asset.
            InsufficientFunds: if the creator cannot cover the out supply.
        """
        with self._lock:
            try:
                terms = StreamTerms(
                    times=StreamTimes(bootstrapping_start, stream_start, stream_end),
                    out_supply=out_supply,
                    in_asset=in_asset,
                    out_asset=out_asset,
                    in_decimals=self.custody.get_decimals(in_asset),
                    out_decimals=self.custody.get_decimals(out_asset),
                    threshold=threshold,
                )
                state = create_stream(terms, self.params, now)
                self.custody.pull(creator, out_asset, out_supply)
            except StreamError as exc:
                if self.verbose:
                    print(f"✗ REJECTED CREATE by {creator}: {type(exc).__name__}: {exc}")
                raise

            stream_id = self._next_id
            self._next_id += 1
            stream = Stream(
                stream_id=stream_id,
                creator=creator,
                state=state,
                params=self.params,
                custody=self.custody,
                created_at=now,
                verbose=self.verbose,
            )
            self._streams[stream_id] = stream
            return stream

    def get_stream(self, stream_id: int) -> Stream:
        if stream_id not in self._streams:
            raise KeyError(f"Stream {stream_id} not found")
        return self._streams[stream_id]

    def find_stream(self, stream_id: int) -> Optional[Stream]:
        return self._streams.get(stream_id)

    def streams(self) -> List[Stream]:
        """All streams in creation order."""
        return [self._streams[k] for k in sorted(self._streams)]
