import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import List, Optional

from ballot.elgamal import Ciphertext
from ballot.issuance import DistributorApproval, sign_issue
from config.config import SystemConfig, load_config
from curves.ed25519 import Ed25519Keypair
from election_system import IntegratedElection, ManualClock
from ledger.remote import CircuitBreaker, RemoteLedger
from threshold.credentials import KeyHolderCredential, load_credentials_dir, write_ceremony_output
from threshold.decryption import build_share_record
from threshold.dkg import run_dkg
from threshold.errors import VotingProtocolError
from threshold.tally import TallyCombiner
from utils.utils import create_performance_report, save_results, setup_logging

logger = logging.getLogger(__name__)

ZERO_NULLIFIER = "0" * 64


def _remote_ledger(url: str, config: SystemConfig) -> RemoteLedger:
    return RemoteLedger(
        url,
        timeout=config.ledger.timeout,
        max_retries=config.ledger.max_retries,
        retry_backoff=config.ledger.retry_backoff,
        circuit_breaker=CircuitBreaker(config.ledger.failure_threshold,
                                       config.ledger.recovery_timeout),
    )


def load_ballots(path: Path) -> List[Ciphertext]:
    """Read [{"c1": hex, "c2": hex}, ...] as written by the casting side"""
    with open(path, 'r') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of ballots")
    return [Ciphertext.from_hex(entry) for entry in data]


# ============================================================================
# COMMANDS
# ============================================================================


def cmd_dkg(args, config: SystemConfig) -> int:
    m = args.m if args.m is not None else config.ceremony.num_key_holders
    t = args.t if args.t is not None else config.ceremony.threshold
    output = Path(args.output) if args.output else config.ceremony.output_dir

    result = run_dkg(m, t)
    written = write_ceremony_output(result, output)

    print(f"DKG complete: m={m}, t={t}")
    print(f"Combined public key: {result.combined_public_key.hex()}")
    for path in written:
        print(f"  wrote {path}")
    return 0


def cmd_distributor(args, config: SystemConfig) -> int:
    if not args.dist_sk:
        keypair = Ed25519Keypair.generate()
        print("Generated distributor key:")
        print(f"  sk: {keypair.seed_hex()}")
        print(f"  pk: {keypair.public_key.hex()}")
        print("\nRe-run with --dist-sk <hex> to use this key.")
        return 0

    if not args.cast_pk or len(args.cast_pk) != 64:
        print("--cast-pk must be a 64-char hex Ed25519 public key", file=sys.stderr)
        return 1

    keypair = Ed25519Keypair.from_hex(args.dist_sk)
    pk_cast = bytes.fromhex(args.cast_pk)
    nf_issue = bytes.fromhex(args.nf_issue)

    # Bare signing path: eligibility was checked out of band
    approval = sign_issue(keypair, args.eid, pk_cast, nf_issue)
    if not approval.verify():
        raise VotingProtocolError("Local verification of the distributor signature failed")

    keys_dir = Path(args.keys)
    keys_dir.mkdir(parents=True, exist_ok=True)
    out_file = keys_dir / f"dist_sig_{args.cast_pk[:8]}.json"
    with open(out_file, 'w') as f:
        json.dump(approval.to_dict(), f, indent=2)

    print(f"Distributor pk: {keypair.public_key.hex()}")
    print(f"Election eid:   {args.eid}")
    print(f"Issue message hash: {approval.message_hash().hex()}")
    print(f"Signature written to {out_file}")
    return 0


def cmd_post_share(args, config: SystemConfig) -> int:
    if args.finalize:
        return _finalize(args, config)
    if not args.kh:
        print("--kh is required unless --finalize is given", file=sys.stderr)
        return 1

    credential = KeyHolderCredential.load(args.kh)
    ballots_path = Path(args.ballots) if args.ballots else Path(args.kh).parent / "ballots.json"
    ballots = load_ballots(ballots_path)

    record = build_share_record(args.eid, credential, [b.c1 for b in ballots])
    print(f"Key-holder {credential.index}: {len(ballots)} partial decryption(s)")

    if args.ledger:
        ledger = _remote_ledger(args.ledger, config)
        count = ledger.post_share(args.eid, record.kh_index, record.pairs,
                                  record.kh_public_key, record.signature)
        print(f"Shares posted, {count} key-holder(s) have posted")
    else:
        output_dir = Path(args.output) if args.output else Path(args.kh).parent
        output_dir.mkdir(parents=True, exist_ok=True)
        out_file = output_dir / f"shares_kh{credential.index}.json"
        with open(out_file, 'w') as f:
            json.dump(dict(record.to_dict(), eid=args.eid), f, indent=2)
        print(f"Signed shares written to {out_file}")
    return 0


def _finalize(args, config: SystemConfig) -> int:
    kh_dir = Path(args.kh_dir)
    credentials = load_credentials_dir(kh_dir)
    threshold = args.t if args.t is not None else config.ceremony.threshold
    if len(credentials) < threshold:
        print(f"Found {len(credentials)} credential files in {kh_dir}, need {threshold}",
              file=sys.stderr)
        return 1

    ballots_path = Path(args.ballots) if args.ballots else kh_dir / "ballots.json"
    ballots = load_ballots(ballots_path)
    c1_points = [b.c1 for b in ballots]

    records = [build_share_record(args.eid, c, c1_points, with_proofs=False)
               for c in credentials[:threshold]]
    combiner = TallyCombiner(args.options_count, threshold, eid=args.eid)
    result = combiner.combine(ballots, records)

    print(f"Tally over key-holders {result.index_set}: {result.counts}")
    if result.rejected:
        print(f"Rejected ballots: {result.rejected}")

    if args.ledger:
        _remote_ledger(args.ledger, config).finalize_tally(args.eid, result.counts)
        print("Tally finalized on the ledger")

    with open(kh_dir / "tally.json", 'w') as f:
        json.dump({'eid': args.eid, 'counts': result.counts,
                   'index_set': result.index_set, 'rejected': result.rejected}, f, indent=2)
    return 0


async def run_demo(num_voters: int, options_count: int, m: int, t: int,
                   config: SystemConfig) -> bool:
    print("\n" + "=" * 60)
    print("THRESHOLD ELECTION DEMONSTRATION")
    print("=" * 60)

    clock = ManualClock()
    election = IntegratedElection(
        title=config.election.title,
        options_count=options_count,
        num_key_holders=m,
        threshold=t,
        num_distributors=config.election.num_distributors,
        distributor_threshold=config.election.distributor_threshold,
        voting_duration=config.election.voting_duration,
        session_ttl=config.sessions.ttl_seconds,
        clock=clock,
    )

    for i in range(num_voters):
        election.register_voter(f"voter_{i:03d}")
    eid = await election.initialize()
    print(f"\nElection {eid}: {num_voters} voters, {options_count} options, "
          f"{m} key-holders (t={t})")

    votes = [random.randrange(options_count) for _ in range(num_voters)]
    for voter_id, vote in zip(election.voters, votes):
        receipt = await election.cast_ballot(voter_id, vote)
        print(f"  ballot {receipt.ballot_index}: nf_cast {receipt.nf_cast.hex()[:16]}...")

    clock.advance(config.election.voting_duration)
    await election.post_decryption_shares()
    result = await election.compute_tally()

    expected = [votes.count(option) for option in range(options_count)]
    print("\nFinal tally:")
    for option, count in enumerate(result.counts):
        print(f"  Option {option}: {count} votes")
    print(f"Key-holders used: {result.index_set}")
    print(f"Matches plaintext votes: {result.counts == expected}")

    results_path = config.results_dir / "demo_results.json"
    save_results({
        'election_id': eid,
        'tally': result,
        'expected': expected,
        'metrics': election.get_system_metrics(),
    }, results_path)

    report_path = config.results_dir / "performance_report.txt"
    with open(report_path, 'w') as f:
        f.write(create_performance_report(election.monitor))
    print(f"\nResults saved to {results_path}")

    return result.counts == expected


# ============================================================================
# ARGUMENT PARSING
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Threshold e-voting engine')
    parser.add_argument('--config', type=str, default='config.yaml',
                        help='Config file path')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Override the configured log level')
    subparsers = parser.add_subparsers(dest='command', required=True)

    dkg = subparsers.add_parser('dkg', help='Run a key-holder DKG ceremony')
    dkg.add_argument('--m', type=int, default=None, help='Number of key-holders')
    dkg.add_argument('--t', type=int, default=None, help='Decryption threshold')
    dkg.add_argument('--output', type=str, default=None, help='Output directory')

    dist = subparsers.add_parser('distributor', help='Sign an issuance approval')
    dist.add_argument('--cast-pk', type=str, default='', help='Casting Ed25519 public key (hex)')
    dist.add_argument('--eid', type=int, default=0, help='Election id')
    dist.add_argument('--nf-issue', type=str, default=ZERO_NULLIFIER, help='Issue nullifier (hex)')
    dist.add_argument('--dist-sk', type=str, default='', help='Distributor Ed25519 seed (hex)')
    dist.add_argument('--keys', type=str, default='keys', help='Directory for the approval file')

    post = subparsers.add_parser('post-share', help='Post decryption shares or finalize a tally')
    post.add_argument('--kh', type=str, default=None, help='Key-holder credential file')
    post.add_argument('--eid', type=int, default=0, help='Election id')
    post.add_argument('--ballots', type=str, default=None, help='Ballots JSON file')
    post.add_argument('--output', type=str, default=None, help='Directory for signed shares')
    post.add_argument('--ledger', type=str, default=None, help='Ledger service URL')
    post.add_argument('--finalize', action='store_true', help='Combine shares and finalize')
    post.add_argument('--kh-dir', type=str, default='keys', help='Directory of credential files')
    post.add_argument('--t', type=int, default=None, help='Decryption threshold')
    post.add_argument('--options-count', type=int, default=2, help='Number of options')

    demo = subparsers.add_parser('demo', help='Run an end-to-end election in memory')
    demo.add_argument('--voters', type=int, default=10, help='Number of voters')
    demo.add_argument('--options', type=int, default=None, help='Number of options')
    demo.add_argument('--m', type=int, default=None, help='Number of key-holders')
    demo.add_argument('--t', type=int, default=None, help='Decryption threshold')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(Path(args.config))
    setup_logging(args.log_level or config.log_level,
                  config.log_dir / "voting_engine.log")

    try:
        if args.command == 'dkg':
            return cmd_dkg(args, config)
        elif args.command == 'distributor':
            return cmd_distributor(args, config)
        elif args.command == 'post-share':
            return cmd_post_share(args, config)
        elif args.command == 'demo':
            options = args.options if args.options is not None else config.election.options_count
            m = args.m if args.m is not None else config.ceremony.num_key_holders
            t = args.t if args.t is not None else config.ceremony.threshold
            success = asyncio.run(run_demo(args.voters, options, m, t, config))
            return 0 if success else 1
    except (VotingProtocolError, ValueError, KeyError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
