"""
Integration tests for the transaction bucket sorter.
"""
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timezone

import pandas as pd
import yaml

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from categorizer.categorizer import TransactionCategorizer
from categorizer.models import CategorySource, RuleSource, RuleType
from categorizer.pipeline import apply_rules
from categorizer.rules import accept_candidates, create_user_rule
from main import main
from miner.generator import AutoRuleGenerator, mine_rules
from output.excel_generator import generate_output_excel, summarize_by_category

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

TRANSACTIONS = [
    {'hash': 's1', 'name': 'STARBUCKS #123', 'amount': -5.25, 'date': '2024-01-02', 'account_id': 'visa'},
    {'hash': 's2', 'name': 'STARBUCKS #456', 'amount': -4.75, 'date': '2024-01-09', 'account_id': 'visa'},
    {'hash': 'n1', 'name': 'NETFLIX.COM', 'amount': -15.99, 'date': '2024-01-05', 'account_id': 'visa'},
    {'hash': 'p1', 'name': 'ACME PAYROLL', 'amount': 2500.00, 'date': '2024-01-15', 'account_id': 'chq'},
    {'hash': 'x1', 'name': 'ONE OFF SHOP', 'amount': -12.00, 'date': '2024-01-20', 'account_id': 'visa'},
]


class TestMiningIntegration(unittest.TestCase):
    """Integration tests for mining and applying rules."""

    def test_starbucks_end_to_end(self):
        """Test a mined store pattern categorizes every store."""
        rules = mine_rules(TRANSACTIONS[:2], min_frequency=2, now=NOW)

        starbucks = [r for r in rules if 'starbucks' in r.pattern]
        self.assertEqual(len(starbucks), 1)
        self.assertEqual(starbucks[0].support, 2)
        self.assertEqual(starbucks[0].category, 'guilt_free')

        result = apply_rules(TRANSACTIONS[:2], rules)
        self.assertEqual([t.category for t in result], ['guilt_free', 'guilt_free'])
        self.assertEqual({t.rule_type for t in result}, {RuleType.AUTOGEN_RULE})

    def test_accepted_candidates_feed_categorizer(self):
        """Test mined candidates, once accepted, categorize the next import."""
        candidates = AutoRuleGenerator(min_frequency=2).generate(TRANSACTIONS, now=NOW).rules
        accepted = accept_candidates(candidates, now=NOW)

        categorizer = TransactionCategorizer(accepted_rules=accepted, system_rules=[], detect_transfers=False)
        next_import = [
            {'hash': 's3', 'name': 'STARBUCKS #789', 'amount': -6.10, 'date': '2024-02-01'},
            {'hash': 'z1', 'name': 'ZZZ', 'amount': -1.00, 'date': '2024-02-01'},
        ]
        result = {t.hash: t for t in categorizer.categorize_all(next_import)}

        self.assertEqual(result['s3'].category, 'guilt_free')
        self.assertEqual(result['s3'].rule_type, RuleType.AUTOGEN_RULE)
        self.assertEqual(result['z1'].category_source, CategorySource.NONE)

    def test_user_rule_beats_mined_rule(self):
        """Test a user rule outranks a mined rule on the same merchant."""
        candidates = mine_rules(TRANSACTIONS, min_frequency=2, now=NOW)
        user = [{'id': 'mine', 'pattern': 'starbucks', 'category': 'fixed_costs',
                 'priority': 2001, 'source': 'user_created'}]
        categorizer = TransactionCategorizer(user_rules=user, accepted_rules=accept_candidates(candidates),
                                             system_rules=[], detect_transfers=False)
        result = categorizer.categorize_all(TRANSACTIONS[:2])
        self.assertEqual([t.rule_id for t in result], ['mine', 'mine'])

    def test_user_rule_beats_accepted_exception_rules(self):
        """Test a new user rule outranks accepted exception rules on the same pattern."""
        batch = [
            {'hash': 'n1', 'name': 'NETFLIX', 'amount': -15.99, 'date': '2024-01-01'},
            {'hash': 'n2', 'name': 'NETFLIX', 'amount': -15.99, 'date': '2024-01-31'},
            {'hash': 'n3', 'name': 'NETFLIX', 'amount': -15.99, 'date': '2024-03-01'},
            {'hash': 'n4', 'name': 'NETFLIX', 'amount': -22.99, 'date': '2024-03-15'},
        ]
        accepted = accept_candidates(AutoRuleGenerator(min_frequency=2).generate(batch, now=NOW).rules, now=NOW)
        self.assertTrue(any(r.source == RuleSource.EXCEPTION_ANALYSIS for r in accepted))

        user = create_user_rule([], category='investments', pattern='netflix', now=NOW)
        self.assertGreater(user.priority, max(r.priority for r in accepted))

        categorizer = TransactionCategorizer(user_rules=[user], accepted_rules=accepted,
                                             system_rules=[], detect_transfers=False)
        result = categorizer.categorize_all(batch)
        self.assertEqual([t.category for t in result], ['investments'] * 4)
        self.assertEqual({t.rule_type for t in result}, {RuleType.USER_RULE})


class TestExcelOutput(unittest.TestCase):
    """Integration tests for the Excel report."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.categorizer = TransactionCategorizer(detect_transfers=False)
        self.categorized = self.categorizer.categorize_all(TRANSACTIONS)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_workbook_sheets(self):
        """Test the report workbook has every sheet and row."""
        output_path = os.path.join(self.temp_dir, 'report.xlsx')
        candidates = mine_rules(TRANSACTIONS, min_frequency=2, now=NOW)
        generate_output_excel(self.categorized, output_path, candidate_rules=candidates,
                              statistics=self.categorizer.get_statistics())

        self.assertTrue(os.path.exists(output_path))
        xl = pd.ExcelFile(output_path)
        self.assertEqual(xl.sheet_names, ['Transactions', 'Category Summary', 'Candidate Rules', 'Statistics'])

        df = pd.read_excel(output_path, sheet_name='Transactions')
        self.assertEqual(len(df), len(TRANSACTIONS))
        self.assertIn('Category', df.columns)

        rules_df = pd.read_excel(output_path, sheet_name='Candidate Rules')
        self.assertEqual(len(rules_df), len(candidates))

    def test_candidate_sheet_optional(self):
        """Test the candidate sheet is left out without candidates."""
        output_path = os.path.join(self.temp_dir, 'report.xlsx')
        generate_output_excel(self.categorized, output_path)
        self.assertNotIn('Candidate Rules', pd.ExcelFile(output_path).sheet_names)

    def test_category_summary(self):
        """Test category totals in the summary sheet."""
        summary = summarize_by_category(self.categorized)
        self.assertEqual(list(summary.columns), ['Category', 'Outflow', 'Inflow', 'Net', 'Count'])
        self.assertEqual(int(summary['Count'].sum()), len(TRANSACTIONS))
        self.assertEqual(summary.iloc[-1]['Category'], 'Uncategorized')

        fixed = summary[summary['Category'] == 'Fixed Costs'].iloc[0]
        self.assertAlmostEqual(fixed['Outflow'], 15.99)

    def test_empty_summary(self):
        """Test summarizing no transactions."""
        self.assertTrue(summarize_by_category([]).empty)


class TestCommandLine(unittest.TestCase):
    """Integration tests for the command line entry point."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.input_path = os.path.join(self.temp_dir, 'transactions.yaml')
        with open(self.input_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'transactions': TRANSACTIONS}, f)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_main_writes_report_and_dump(self):
        """Test the command line writes the report and the YAML dump."""
        rules_path = os.path.join(self.temp_dir, 'rules.yaml')
        with open(rules_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'rules': [{'id': 'pay', 'match_type': 'inflow', 'category': 'short_term_savings',
                                       'priority': 2001}]}, f)
        overrides_path = os.path.join(self.temp_dir, 'overrides.yaml')
        with open(overrides_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'overrides': {'x1': 'investments'}}, f)

        report = os.path.join(self.temp_dir, 'report.xlsx')
        dump = os.path.join(self.temp_dir, 'dump.yaml')
        code = main(['--input', self.input_path, '--output', report, '--dump', dump,
                     '--rules', rules_path, '--overrides', overrides_path, '--mine', '--min-frequency', '2'])

        self.assertEqual(code, 0)
        self.assertTrue(os.path.exists(report))
        with open(dump, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f)

        by_hash = {t['hash']: t for t in document['transactions']}
        self.assertEqual(by_hash['p1']['category'], 'short_term_savings')
        self.assertEqual(by_hash['p1']['rule_type'], 'user_rule')
        self.assertEqual(by_hash['x1']['category_source'], 'manual')
        self.assertEqual(by_hash['n1']['rule_type'], 'system_rule')
        self.assertGreater(len(document['candidate_rules']), 0)
        self.assertEqual(document['statistics']['total'], len(TRANSACTIONS))

    def test_missing_input(self):
        """Test a missing input file exits with an error."""
        self.assertEqual(main(['--input', os.path.join(self.temp_dir, 'missing.yaml')]), 1)

    def test_malformed_rules_file(self):
        """Test a malformed rules file exits with an error."""
        rules_path = os.path.join(self.temp_dir, 'rules.yaml')
        with open(rules_path, 'w', encoding='utf-8') as f:
            f.write("- {id: broken, match_type: fuzzy, pattern: x, category: y}\n")
        self.assertEqual(main(['--input', self.input_path, '--rules', rules_path]), 1)


if __name__ == '__main__':
    unittest.main()
