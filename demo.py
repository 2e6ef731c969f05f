#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: One Stream from Creation to Exit

A pedagogical walk through a single distribution stream. Each step builds on
the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Setup           - Custody, protocol parameters, creating a stream
  4-6: Price Discovery - Subscribing, continuous distribution, late entry
  7-8: Close-out       - Finalize, exits and the conservation proof
  9:   Scale           - A seeded random scenario with numpy analytics

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from streamledger import (
    AssetInfo,
    InMemoryCustody,
    OperationNotAllowed,
    StreamFactory,
    default_params,
    effective_prices,
    position_table,
    random_schedule,
    replay_schedule,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Timeline (seconds)
    created_at: int = 1_000
    bootstrapping_start: int = 1_500
    stream_start: int = 7_500
    stream_end: int = 107_500

    # Amounts (native units)
    out_supply: int = 10_000
    alice_deposit: int = 1_000
    bob_deposit: int = 1_000
    participant_funding: int = 10 ** 12

    # Random scenario (Step 9)
    scenario_seed: int = 2024
    scenario_actions: int = 200


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def make_custody(participants) -> InMemoryCustody:
    custody = InMemoryCustody("stream_custody")
    custody.register_asset(AssetInfo("USDC", 6, "USD Coin"))
    custody.register_asset(AssetInfo("TOKEN", 18, "Project Token"))
    custody.fund("creator", "TOKEN", CONFIG.out_supply)
    for participant in participants:
        custody.fund(participant, "USDC", CONFIG.participant_funding)
    return custody


def open_stream(factory: StreamFactory):
    return factory.create_stream(
        creator="creator",
        in_asset="USDC",
        out_asset="TOKEN",
        out_supply=CONFIG.out_supply,
        bootstrapping_start=CONFIG.bootstrapping_start,
        stream_start=CONFIG.stream_start,
        stream_end=CONFIG.stream_end,
        now=CONFIG.created_at,
    )


# ============================================================================
# SETUP (Steps 1-3)
# ============================================================================

def step_01_custody():
    step_header(1, "Asset Custody",
        "Streams never hold assets themselves; custody does.")
    print("""
    Every unit of value lives in custody as an integer balance. fund() issues
    assets from the reserved 'system' holder, whose balance goes negative by
    exactly what it issued. Balances of every asset always sum to zero.
    """)
    wait_for_enter()

    custody = make_custody(["alice", "bob"])
    section_header("Balances")
    for holder in ("creator", "alice", "bob"):
        print(f"{holder:8s} TOKEN={custody.get_balance(holder, 'TOKEN'):>15,}  "
              f"USDC={custody.get_balance(holder, 'USDC'):>18,}")
    print(f"\nConservation: {custody.verify_conservation()['valid']}")
    return custody


def step_02_params():
    step_header(2, "Protocol Parameters",
        "One frozen parameter set per factory: exit fee and minimum phase lengths.")
    params = default_params("treasury")
    print(f"exit_fee_ratio:             {params.exit_fee_ratio}")
    print(f"min_waiting_duration:       {params.min_waiting_duration}s")
    print(f"min_bootstrapping_duration: {params.min_bootstrapping_duration}s")
    print(f"min_stream_duration:        {params.min_stream_duration}s")
    wait_for_enter()
    return params


def step_03_create(factory: StreamFactory):
    step_header(3, "Creating a Stream",
        "The creator locks the whole out supply into custody up front.")
    stream = open_stream(factory)
    print(f"\n{stream!r}")
    print(f"Stream holds {stream.held('TOKEN'):,} TOKEN")
    wait_for_enter()
    return stream


# ============================================================================
# PRICE DISCOVERY (Steps 4-6)
# ============================================================================

def step_04_subscribe(stream):
    step_header(4, "Subscribing",
        "Deposits are only accepted while BOOTSTRAPPING or ACTIVE.")
    section_header("Too early")
    try:
        stream.deposit("alice", CONFIG.alice_deposit, CONFIG.created_at)
    except OperationNotAllowed as exc:
        print(f"(expected) {exc}")

    section_header("Bootstrapping")
    position = stream.deposit("alice", CONFIG.alice_deposit, CONFIG.bootstrapping_start)
    print(f"alice: in_balance={position.in_balance} shares={position.shares}")
    wait_for_enter()


def step_05_distribution(stream):
    step_header(5, "Continuous Distribution",
        "Out asset is released linearly in time against the pooled in asset.")
    half_way = (CONFIG.stream_start + CONFIG.stream_end) // 2
    stream.sync(half_way)
    dist = stream.distribution
    print(f"\nAt t={half_way}:")
    print(f"  out_remaining:  {dist.out_remaining:,}")
    print(f"  in_supply:      {dist.in_supply:,}")
    print(f"  spent_in:       {dist.spent_in:,}")
    print(f"  dist_index:     {dist.dist_index}")
    print(f"  streamed price: {dist.current_streamed_price}")
    wait_for_enter()
    return half_way


def step_06_late_entry(stream, now: int):
    step_header(6, "Late Entry",
        "A late subscriber buys over a shorter window and gets fewer tokens per unit.")
    position = stream.deposit("bob", CONFIG.bob_deposit, now)
    print(f"bob:   in_balance={position.in_balance} shares={position.shares}")
    print("bob receives more shares: the pool left holds less unspent in asset.")
    wait_for_enter()


# ============================================================================
# CLOSE-OUT (Steps 7-8)
# ============================================================================

def step_07_finalize(stream):
    step_header(7, "Finalize",
        "After the end, the creator collects what was spent, minus the exit fee.")
    outcome = stream.finalize("creator", CONFIG.stream_end)
    print(f"status:          {outcome.status.value}")
    print(f"creator_revenue: {outcome.creator_revenue:,}")
    print(f"protocol_fee:    {outcome.protocol_fee:,}")
    print(f"out_refund:      {outcome.out_refund:,}")
    wait_for_enter()


def step_08_exits(stream):
    step_header(8, "Exits and the Conservation Proof",
        "Every participant leaves with purchased tokens plus any unspent balance.")
    for participant in ("alice", "bob"):
        outcome = stream.exit(participant, CONFIG.stream_end)
        print(f"{participant:6s} {outcome.kind.value}: out={outcome.out_amount:,} "
              f"in_refund={outcome.in_refund:,}")

    result = stream.verify_conservation()
    section_header("Stream books")
    print(f"valid: {result['valid']}  held: {result['held']}")
    print(f"custody conservation: {stream.custody.verify_conservation()['valid']}")
    print(f"\nEvent log ({len(stream.event_log)} events):")
    for event in stream.event_log:
        print(f"  {event!r}")
    wait_for_enter()


# ============================================================================
# SCALE (Step 9)
# ============================================================================

def step_09_scenario(params):
    step_header(9, "Random Scenario",
        "A seeded schedule replays identically; numpy summarizes the outcome.")
    participants = [f"user{i:02d}" for i in range(12)]
    factory = StreamFactory(params, make_custody(participants))
    stream = open_stream(factory)
    schedule = random_schedule(
        CONFIG.scenario_seed, participants,
        CONFIG.bootstrapping_start, CONFIG.stream_end, CONFIG.scenario_actions,
    )
    applied = replay_schedule(stream, schedule)
    stream.sync(CONFIG.stream_end)
    print(f"Applied {applied} of {len(schedule)} actions")

    table = position_table(stream)
    prices = effective_prices(stream)
    section_header("Outcome")
    print(f"{'participant':12s} {'spent_in':>14s} {'purchased':>12s} {'price':>10s}")
    for name, spent, bought, price in zip(table['participants'], table['spent_in'],
                                          table['purchased'], prices):
        print(f"{name:12s} {spent:>14,.0f} {bought:>12,.0f} {price:>10.4g}")
    print(f"\nConservation: {stream.verify_conservation()['valid']}")


def main():
    print("=" * 70)
    print("       STREAMLEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    custody = step_01_custody()
    params = step_02_params()
    factory = StreamFactory(params, custody, verbose=True)
    stream = step_03_create(factory)
    step_04_subscribe(stream)
    half_way = step_05_distribution(stream)
    step_06_late_entry(stream, half_way)
    step_07_finalize(stream)
    step_08_exits(stream)
    step_09_scenario(params)

    print(f"\n{'='*70}")
    print("Tutorial complete.")
    print(f"{'='*70}")


if __name__ == "__main__":
    main()
