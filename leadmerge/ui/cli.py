"""Command-line interface for LeadMerge."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .. import __version__
from ..errors import LeadMergeError
from ..matching import (
    DuplicateChecker,
    DuplicateGroup,
    DuplicateScanner,
    PhoneticBlockingClusterer,
    duplicate_stats,
)
from ..config import default_config
from ..merge import ConflictResolutionPolicy, LeadMerger
from ..store import PolicyStore, SQLiteLeadStore
from ..utils.audit_trail import MergeAuditTrail


def print_groups(groups: List[DuplicateGroup]) -> None:
    """Print duplicate groups, one block per group.

    Args:
        groups: Groups to display
    """
    if not groups:
        print("No duplicates found.")
        return

    print("\n" + "=" * 60)
    print(f"DUPLICATE GROUPS ({len(groups)})")
    print("=" * 60)
    for i, group in enumerate(groups, 1):
        print(f"{i}. {group.match_type.value} ({group.confidence}%)  [{group.id}]")
        for lead in group.leads:
            marker = '*' if lead.id == group.primary_lead_id else ' '
            print(f"   {marker} {lead.id}  {lead}  {lead.phone or ''}".rstrip())
    print("=" * 60 + "\n")


def print_stats(groups: List[DuplicateGroup]) -> None:
    """Print summary counts for duplicate groups."""
    stats = duplicate_stats(groups)

    print("\n" + "=" * 60)
    print("DUPLICATE STATISTICS")
    print("=" * 60)
    print(f"Duplicate Groups:       {stats['total_groups']:,}")
    print(f"Leads to Remove:        {stats['total_duplicates']:,}")
    print(f"Exact Matches:          {stats['exact_matches']:,}")
    print(f"Near Matches:           {stats['near_matches']:,}")
    print("=" * 60 + "\n")


def _scan(store: SQLiteLeadStore, args: argparse.Namespace) -> List[DuplicateGroup]:
    clusterer = None
    if getattr(args, 'phonetic', False):
        clusterer = PhoneticBlockingClusterer(default_config.name_similarity_threshold)
    scanner = DuplicateScanner(store, clusterer=clusterer)
    if args.exact:
        return scanner.scan_exact(args.tenant)
    return scanner.scan_all(args.tenant)


def policy_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    policies = PolicyStore(store)
    if args.action == 'show':
        config = policies.get_config(args.tenant)
        print(f"Duplicate prevention: {config.duplicate_prevention_field.value}")
        if config.duplicate_prevention_configured_at:
            print(f"Configured at:        {config.duplicate_prevention_configured_at.isoformat()}")
        return 0

    if not args.field:
        print("Error: policy set requires a field (email, phone, both)", file=sys.stderr)
        return 1
    config = policies.set_prevention_policy(args.tenant, args.field)
    print(f"Duplicate prevention set to {config.duplicate_prevention_field.value}")
    return 0


def check_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    result = DuplicateChecker(store).check(args.email, args.phone, args.tenant)
    if result.is_duplicate:
        print(f"Duplicate of {result.existing_lead.id} ({result.existing_lead}) "
              f"matched on {result.match_type}")
    else:
        print("Not a duplicate")
    return 0


def scan_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    groups = _scan(store, args)
    if args.json:
        print(json.dumps([group.to_dict() for group in groups], indent=2))
    else:
        print_groups(groups)
    return 0


def stats_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    print_stats(_scan(store, args))
    return 0


def merge_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    audit = _audit(args)
    try:
        result = LeadMerger(store, audit=audit).merge_two(
            args.tenant, args.primary, args.secondary
        )
    finally:
        if audit:
            audit.close()
    print(result)
    return 0


def merge_all_command(args: argparse.Namespace, store: SQLiteLeadStore) -> int:
    policy = ConflictResolutionPolicy()
    if args.policy_file:
        policy = ConflictResolutionPolicy.from_dict(
            json.loads(Path(args.policy_file).read_text(encoding='utf-8'))
        )

    groups = _scan(store, args)
    if not groups:
        print("No duplicates found.")
        return 0

    if args.dry_run:
        merger = LeadMerger(store)
        for group in groups:
            merged, resolutions = merger.preview_merge(group, policy)
            print(f"{group.id}: keep {merged.id}, remove {len(group.secondaries)}, "
                  f"{len(resolutions)} field(s) change")
        return 0

    audit = _audit(args)
    try:
        outcome = LeadMerger(store, audit=audit).bulk_merge_groups(
            groups, policy, max_workers=args.workers
        )
    finally:
        if audit:
            audit.close()
    print(f"Merged {outcome.success_count} group(s), {outcome.failed_count} failed")
    for group_id, error in outcome.failures:
        print(f"  {group_id}: {error}", file=sys.stderr)
    return 2 if outcome.failed_count else 0


def _audit(args: argparse.Namespace) -> Optional[MergeAuditTrail]:
    return MergeAuditTrail(args.database) if args.audit else None


COMMANDS = {
    'policy': policy_command,
    'check': check_command,
    'scan': scan_command,
    'stats': stats_command,
    'merge': merge_command,
    'merge-all': merge_all_command,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='leadmerge',
        description='Find and merge duplicate leads in a lead database.',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands'
    )

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('database', help='Path to the lead database')
        sub.add_argument('-t', '--tenant', required=True, help='Tenant ID')
        return sub

    def add_scan_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            '--exact',
            action='store_true',
            help="Only find violations of the tenant's prevention policy"
        )
        sub.add_argument(
            '--phonetic',
            action='store_true',
            help='Compare names only within Metaphone buckets of the last name'
        )

    policy_parser = add_command('policy', 'Show or set the duplicate prevention policy')
    policy_parser.add_argument('action', choices=['show', 'set'])
    policy_parser.add_argument('field', nargs='?', choices=['email', 'phone', 'both'])

    check_parser = add_command('check', 'Check whether a new lead would be a duplicate')
    check_parser.add_argument('email', help='Email of the new lead')
    check_parser.add_argument('-p', '--phone', help='Phone of the new lead')

    scan_parser = add_command('scan', 'Find duplicate groups')
    add_scan_options(scan_parser)
    scan_parser.add_argument('--json', action='store_true', help='Print groups as JSON')

    stats_parser = add_command('stats', 'Summarize duplicate groups')
    add_scan_options(stats_parser)

    merge_parser = add_command('merge', 'Merge one lead into another')
    merge_parser.add_argument('primary', help='ID of the lead to keep')
    merge_parser.add_argument('secondary', help='ID of the lead to merge and delete')
    merge_parser.add_argument('--audit', action='store_true', help='Record the merge in the audit log')

    merge_all_parser = add_command('merge-all', 'Merge every duplicate group found')
    add_scan_options(merge_all_parser)
    merge_all_parser.add_argument(
        '--policy-file',
        help='JSON file with the conflict resolution policy'
    )
    merge_all_parser.add_argument(
        '-w', '--workers',
        type=int,
        default=1,
        help='Parallel merges when groups do not overlap (default: 1)'
    )
    merge_all_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be merged without changing anything'
    )
    merge_all_parser.add_argument('--audit', action='store_true', help='Record merges in the audit log')

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for error, 2 for partial merge failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    # If no command specified, print help
    if not args.command:
        parser.print_help()
        return 0

    if not Path(args.database).exists():
        print(f"Error: Database not found: {args.database}", file=sys.stderr)
        return 1

    try:
        with SQLiteLeadStore(args.database) as store:
            return COMMANDS[args.command](args, store)
    except LeadMergeError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
