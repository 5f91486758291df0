#!/usr/bin/env python3
"""
Transaction Bucket Sorter - Main Entry Point

Categorizes imported transactions into spending buckets with layered rules
(manual overrides, user rules, accepted mined rules, system rules),
optionally mines new candidate rules, and writes an Excel report and/or a
YAML dump.

Usage:
    python main.py --input <transactions.yaml> [options]

Examples:
    python main.py --input transactions.json --output report.xlsx
    python main.py --input transactions.yaml --rules my_rules.yaml --mine --dump result.yaml
"""
import argparse
import logging
import os
import sys
from typing import Any, Dict, List

import yaml

from config import APP_NAME, APP_VERSION, MIN_FREQUENCY
from categorizer.categorizer import TransactionCategorizer
from categorizer.models import Transaction, as_transaction
from categorizer.overrides import load_manual_overrides
from categorizer.rules import load_rules_file, load_system_rules
from miner.generator import AutoRuleGenerator
from output.excel_generator import generate_output_excel

logger = logging.getLogger(__name__)


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Categorize transactions into spending buckets and mine new rules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --input transactions.json --output report.xlsx
  python main.py --input transactions.yaml --rules rules.yaml --mine --dump out.yaml

Environment Variables:
  BUCKETSORTER_MIN_FREQUENCY     - Minimum support for mined rules (default: 2)
  BUCKETSORTER_MAX_RULES         - Maximum mined rules per run (default: 50)
  BUCKETSORTER_LARGE_AMOUNT      - Large purchase threshold (default: 500)
  BUCKETSORTER_SYSTEM_RULES      - Path to the system rules YAML file
  BUCKETSORTER_DETECT_TRANSFERS  - Label transfers between accounts (default: true)
        """
    )

    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Transactions document (YAML or JSON list, or {transactions: [...]})'
    )
    parser.add_argument(
        '--output', '-o',
        default=None,
        help='Path for the output Excel report'
    )
    parser.add_argument(
        '--dump', '-d',
        default=None,
        help='Write categorized transactions (and mined rules) as YAML to this path'
    )
    parser.add_argument(
        '--rules', '-r',
        action='append',
        default=[],
        help='User rules document (may be repeated)'
    )
    parser.add_argument(
        '--accepted',
        action='append',
        default=[],
        help='Accepted mined rules document (may be repeated)'
    )
    parser.add_argument(
        '--system-rules',
        default=None,
        help='System rules YAML (default: bundled system_rules.yaml)'
    )
    parser.add_argument(
        '--overrides',
        default=None,
        help='Manual overrides document ({overrides: {hash: category}})'
    )
    parser.add_argument(
        '--mine', '-m',
        action='store_true',
        help='Mine candidate rules from the transactions'
    )
    parser.add_argument(
        '--min-frequency',
        type=int,
        default=None,
        help=f'Minimum support for mined rules (default: {MIN_FREQUENCY})'
    )
    parser.add_argument(
        '--no-transfers',
        action='store_true',
        help='Do not label transfers between accounts'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose (debug) logging'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    return parser.parse_args(argv)


def load_transactions(path: str) -> List[Transaction]:
    """
    Load transactions from a YAML or JSON document.

    Raises:
        ValueError: if the document is not a list of transactions
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get('transactions', [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of transactions")

    return [as_transaction(item) for item in data]


def dump_results(path: str, transactions: List[Transaction], rules: List[Any],
                 statistics: Dict[str, Any]) -> None:
    """Write categorized transactions and mined rules as YAML."""
    document = {
        'statistics': statistics,
        'transactions': [t.to_dict() for t in transactions],
    }
    if rules:
        document['candidate_rules'] = [r.to_dict() for r in rules]

    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
    logger.info("Results written to %s", path)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not os.path.exists(args.input):
        print(f"Error: Input file not found: {args.input}")
        return 1

    print(f"\n{'='*60}")
    print(APP_NAME)
    print(f"{'='*60}")
    print(f"Input file: {args.input}")
    if args.output:
        print(f"Report: {args.output}")
    if args.dump:
        print(f"Dump: {args.dump}")
    print(f"{'='*60}\n")

    try:
        transactions = load_transactions(args.input)
        user_rules = [r for path in args.rules for r in load_rules_file(path)]
        accepted_rules = [r for path in args.accepted for r in load_rules_file(path)]
    except (OSError, yaml.YAMLError, ValueError) as e:
        # RuleFormatError is a ValueError
        print(f"Error: {e}")
        return 1

    if not transactions:
        print("Error: No transactions found in the input")
        return 1

    system_rules = load_system_rules(args.system_rules)
    overrides = load_manual_overrides(args.overrides) if args.overrides else {}

    categorizer = TransactionCategorizer(
        user_rules=user_rules,
        accepted_rules=accepted_rules,
        system_rules=system_rules,
        manual_overrides=overrides,
        detect_transfers=False if args.no_transfers else None,
    )
    categorized = categorizer.categorize_all(transactions)
    statistics = categorizer.get_statistics()

    candidates = []
    if args.mine:
        result = AutoRuleGenerator(min_frequency=args.min_frequency).generate(categorized)
        candidates = result.rules
        statistics['mining'] = result.stats
        print(f"\nMined {len(candidates)} candidate rules")
        for rule in candidates[:10]:
            print(f"  [{rule.priority:>4}] {rule.match_type.value:<8} {rule.pattern!r} -> {rule.category} "
                  f"({rule.actual_matches} matches)")

    if args.output:
        generate_output_excel(
            categorized,
            args.output,
            candidate_rules=candidates if args.mine else None,
            statistics=statistics,
        )

    if args.dump:
        dump_results(args.dump, categorized, candidates, statistics)

    print(f"\n{'='*60}")
    print("Processing complete!")
    print(f"Categorized: {statistics['total'] - statistics['uncategorized']} of {statistics['total']}")
    print(f"{'='*60}\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
