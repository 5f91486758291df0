"""
Unit tests for the rule application pipeline.
"""
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from categorizer.models import CategorySource, Rule, RuleType, Transaction
from categorizer.pipeline import (
    NO_MATCH_EXPLAIN,
    apply_rules,
    apply_rules_with_details,
    reapply_categories,
    sort_rules,
    transactions_for_rule,
    unmatched_transactions,
)


def rule(rule_id, pattern, category, **kwargs) -> Rule:
    data = {'id': rule_id, 'match_type': 'contains', 'pattern': pattern, 'category': category}
    data.update(kwargs)
    return Rule.from_dict(data)


def txn(txn_hash, name, amount=-10.0, **kwargs) -> Transaction:
    data = {'hash': txn_hash, 'name': name, 'amount': amount, 'date': '2024-02-01'}
    data.update(kwargs)
    return Transaction.from_dict(data)


class TestRuleOrdering(unittest.TestCase):
    """Tests for rule precedence."""

    def test_higher_priority_wins(self):
        """Test the higher priority rule wins."""
        rules = [
            rule('low', 'coffee', 'guilt_free', priority=10),
            rule('high', 'coffee', 'fixed_costs', priority=20),
        ]
        result = apply_rules([txn('t1', 'BLUE COFFEE')], rules)
        self.assertEqual(result[0].rule_id, 'high')
        self.assertEqual(result[0].category, 'fixed_costs')

    def test_recency_breaks_priority_tie(self):
        """Test the newer rule wins a priority tie."""
        rules = [
            rule('old', 'coffee', 'guilt_free', priority=10, updated_at='2024-01-01T00:00:00Z'),
            rule('new', 'coffee', 'fixed_costs', priority=10, updated_at='2024-06-01T00:00:00Z'),
        ]
        result = apply_rules([txn('t1', 'BLUE COFFEE')], rules)
        self.assertEqual(result[0].rule_id, 'new')

    def test_input_order_breaks_full_tie(self):
        """Test input order breaks a full tie."""
        rules = [
            rule('first', 'coffee', 'guilt_free', priority=10),
            rule('second', 'coffee', 'fixed_costs', priority=10),
        ]
        self.assertEqual(apply_rules([txn('t1', 'BLUE COFFEE')], rules)[0].rule_id, 'first')
        self.assertEqual([r.id for r in sort_rules(rules)], ['first', 'second'])

    def test_disabled_rules_skipped(self):
        """Test disabled rules are skipped."""
        rules = [
            rule('off', 'coffee', 'fixed_costs', priority=99, enabled=False),
            rule('on', 'coffee', 'guilt_free', priority=1),
        ]
        self.assertEqual(apply_rules([txn('t1', 'BLUE COFFEE')], rules)[0].rule_id, 'on')

    def test_invalid_regex_does_not_abort_batch(self):
        """Test a bad regex does not stop the batch."""
        rules = [
            rule('bad', '([', 'fixed_costs', match_type='regex', priority=99),
            rule('good', 'coffee', 'guilt_free', priority=1),
        ]
        with self.assertLogs('categorizer.matcher', level='WARNING'):
            result = apply_rules([txn('t1', 'BLUE COFFEE'), txn('t2', 'RED COFFEE')], rules)
        self.assertEqual([t.rule_id for t in result], ['good', 'good'])


class TestApplyRules(unittest.TestCase):
    """Tests for categorization results."""

    def test_rule_match_fields(self):
        """Test fields set by a rule match."""
        system = rule('sys', 'hydro', 'fixed_costs', source='system', labels=['utility'],
                      explain='Utilities')
        result = apply_rules([txn('t1', 'TORONTO HYDRO', labels=['imported'])], [system])[0]
        self.assertEqual(result.category, 'fixed_costs')
        self.assertEqual(result.category_source, CategorySource.RULE)
        self.assertEqual(result.category_explain, 'Utilities')
        self.assertEqual(result.rule_type, RuleType.SYSTEM_RULE)
        self.assertEqual(result.labels, ['imported', 'utility'])

    def test_label_union_has_no_duplicates(self):
        """Test rule labels merge without duplicates."""
        r = rule('r', 'hydro', 'fixed_costs', labels=['a', 'b'])
        result = apply_rules([txn('t1', 'HYDRO', labels=['a'])], [r])[0]
        self.assertEqual(result.labels, ['a', 'b'])
        self.assertEqual(result.rule_type, RuleType.USER_RULE)

    def test_unmatched_is_uncategorized(self):
        """Test unmatched transactions are uncategorized."""
        stale = txn('t1', 'MYSTERY', category='fixed_costs', category_source='rule',
                    rule_id='gone', labels=['keep'])
        result = apply_rules([stale], [rule('r', 'hydro', 'fixed_costs')])[0]
        self.assertIsNone(result.category)
        self.assertEqual(result.category_source, CategorySource.NONE)
        self.assertEqual(result.category_explain, NO_MATCH_EXPLAIN)
        self.assertEqual(result.rule_type, RuleType.NONE)
        self.assertIsNone(result.rule_id)
        self.assertEqual(result.labels, ['keep'])

    def test_manual_override_is_sticky(self):
        """Test manual overrides are never changed."""
        manual = txn('t1', 'HYDRO', category='investments', manual_override=True)
        result = apply_rules([manual], [rule('r', 'hydro', 'fixed_costs', priority=5000)])[0]
        self.assertEqual(result, manual)
        self.assertEqual(result.category, 'investments')

    def test_manual_source_implies_override(self):
        """Test a manual category source counts as an override."""
        manual = txn('t1', 'HYDRO', category='investments', category_source='manual')
        result = apply_rules([manual], [rule('r', 'hydro', 'fixed_costs')])[0]
        self.assertEqual(result.category, 'investments')

    def test_inputs_not_mutated(self):
        """Test inputs are not changed."""
        original = txn('t1', 'HYDRO')
        r = rule('r', 'hydro', 'fixed_costs')
        apply_rules([original], [r])
        self.assertIsNone(original.category)
        self.assertEqual(original.category_source, CategorySource.NONE)

    def test_outputs_are_private_copies(self):
        """Test manual and unmatched outputs share no state with the inputs."""
        manual = txn('t1', 'HYDRO', category='investments', manual_override=True, labels=['bill'])
        unmatched = txn('t2', 'ZZZ', labels=['keep'])
        result = apply_rules([manual, unmatched], [rule('r', 'hydro', 'fixed_costs')])

        self.assertIsNot(result[0], manual)
        self.assertIsNot(result[0].labels, manual.labels)
        self.assertIsNot(result[1].labels, unmatched.labels)

        result[0].labels.append('edited')
        result[1].labels.append('edited')
        self.assertEqual(manual.labels, ['bill'])
        self.assertEqual(unmatched.labels, ['keep'])

    def test_accepts_dictionaries(self):
        """Test dictionaries are accepted."""
        result = apply_rules(
            [{'hash': 't1', 'name': 'HYDRO ONE', 'amount': '-80.00'}],
            [{'id': 'r', 'pattern': 'hydro', 'category': 'fixed_costs'}],
        )
        self.assertEqual(result[0].category, 'fixed_costs')

    def test_output_order_and_length(self):
        """Test output keeps input order and length."""
        batch = [txn(f't{i}', name) for i, name in enumerate(['HYDRO', 'X', 'HYDRO', 'Y'])]
        result = apply_rules(batch, [rule('r', 'hydro', 'fixed_costs')])
        self.assertEqual([t.hash for t in result], ['t0', 't1', 't2', 't3'])

    def test_non_list_input(self):
        """Test non-list input is rejected."""
        with self.assertRaises(TypeError):
            apply_rules("not a list", [])
        with self.assertRaises(TypeError):
            apply_rules([], None)

    def test_empty_inputs(self):
        """Test empty inputs."""
        self.assertEqual(apply_rules([], []), [])
        result = apply_rules([txn('t1', 'HYDRO')], [])
        self.assertEqual(result[0].category_source, CategorySource.NONE)


class TestDetails(unittest.TestCase):
    """Tests for per-rule bookkeeping."""

    def setUp(self):
        self.batch = [
            txn('a', 'HYDRO ONE'),
            txn('b', 'BELL CANADA'),
            txn('c', 'HYDRO QUEBEC'),
            txn('d', 'UNKNOWN SHOP'),
            txn('e', 'HYDRO', category='guilt_free', manual_override=True),
        ]
        self.rules = [
            rule('hydro', 'hydro', 'fixed_costs', priority=10),
            rule('bell', 'bell', 'fixed_costs', priority=5),
            rule('never', 'zzz', 'guilt_free'),
        ]

    def test_rule_matches_and_coverage(self):
        """Test per-rule claims and coverage."""
        details = apply_rules_with_details(self.batch, self.rules)
        self.assertEqual(details.rule_matches['hydro'], ['a', 'c'])
        self.assertEqual(details.rule_matches['bell'], ['b'])
        self.assertEqual(details.rule_matches['never'], [])
        self.assertEqual(details.covered, ['a', 'b', 'c'])
        self.assertEqual([t.hash for t in details.uncovered], ['d'])

    def test_claims_never_overlap(self):
        """Test no transaction is claimed twice."""
        details = apply_rules_with_details(self.batch, self.rules)
        claimed = [h for hashes in details.rule_matches.values() for h in hashes]
        self.assertEqual(len(claimed), len(set(claimed)))
        self.assertLessEqual(len(claimed), len(self.batch))

    def test_transactions_for_rule(self):
        """Test looking up a rule's transactions."""
        found = transactions_for_rule(self.rules[0], self.batch)
        self.assertEqual([t.hash for t in found], ['a', 'c', 'e'])

    def test_unmatched_transactions(self):
        """Test listing unmatched transactions."""
        found = unmatched_transactions(self.batch, self.rules)
        self.assertEqual([t.hash for t in found], ['d'])


class TestReapply(unittest.TestCase):
    """Tests for re-applying rules to existing transactions."""

    def test_reapply_is_idempotent(self):
        """Test reapplying rules changes nothing."""
        batch = [txn('a', 'HYDRO ONE'), txn('b', 'NOTHING'), txn('c', 'BELL')]
        rules = [rule('hydro', 'hydro', 'fixed_costs'), rule('bell', 'bell', 'fixed_costs')]

        first, stats = reapply_categories(batch, rules)
        self.assertEqual(stats, {'updated': 2, 'total': 3})

        second, stats = reapply_categories(first, rules)
        self.assertEqual(stats, {'updated': 0, 'total': 3})
        self.assertEqual(first, second)

    def test_reapply_after_rule_change(self):
        """Test reapplying after a rule change."""
        batch = [txn('a', 'HYDRO ONE')]
        first, _ = reapply_categories(batch, [rule('hydro', 'hydro', 'fixed_costs')])
        second, stats = reapply_categories(first, [rule('hydro', 'hydro', 'guilt_free')])
        self.assertEqual(stats['updated'], 1)
        self.assertEqual(second[0].category, 'guilt_free')


if __name__ == '__main__':
    unittest.main()
