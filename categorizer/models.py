"""
Data model for rules and transactions.

Rules and transactions travel as flat dictionaries (YAML/JSON documents,
database rows). They are parsed once into the dataclasses below; every
operation on them returns new objects instead of mutating its inputs.
"""
import hashlib
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from normalizer.amount_parser import parse_amount, parse_flag, parse_optional_amount
from normalizer.date_parser import EPOCH, format_date, format_timestamp, parse_date, parse_timestamp


class RuleFormatError(ValueError):
    """Raised when a rule document cannot be turned into a Rule."""


class MatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"
    MCC = "mcc"
    INFLOW = "inflow"


class RuleSource(str, Enum):
    USER_CREATED = "user_created"
    FREQUENCY_ANALYSIS = "frequency_analysis"
    STORE_PATTERN = "store_pattern"
    MCC_ANALYSIS = "mcc_analysis"
    MERCHANT_ID_ANALYSIS = "merchant_id_analysis"
    RECURRING_ANALYSIS = "recurring_analysis"
    MARKETPLACE_ANALYSIS = "marketplace_analysis"
    EXCEPTION_ANALYSIS = "exception_analysis"
    SYSTEM = "system"

    @property
    def is_authoritative(self) -> bool:
        """User-created and system rules are trusted as written."""
        return self in (RuleSource.USER_CREATED, RuleSource.SYSTEM)


class CategorySource(str, Enum):
    RULE = "rule"
    MANUAL = "manual"
    NONE = "none"


class RuleType(str, Enum):
    USER_RULE = "user_rule"
    AUTOGEN_RULE = "autogen_rule"
    SYSTEM_RULE = "system_rule"
    MANUAL_OVERRIDE = "manual_override"
    NONE = "none"


def _parse_enum(enum_cls, value: Any, default, field_name: str, strict: bool = True):
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        if not strict:
            return default
        raise RuleFormatError(f"Unknown {field_name}: {value!r}") from None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _labels(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    labels: List[str] = []
    for label in value:
        label = str(label).strip()
        if label and label not in labels:
            labels.append(label)
    return labels


def merge_labels(existing: List[str], extra: List[str]) -> List[str]:
    """Union of two label lists, de-duplicated, first-seen order kept."""
    merged = list(existing)
    for label in extra:
        if label not in merged:
            merged.append(label)
    return merged


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class RuleScope:
    """
    Optional constraints narrowing where a rule applies.

    Amount bounds are compared against the absolute transaction amount.
    """
    account_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    inflow_only: bool = False
    outflow_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_id': self.account_id,
            'start_date': format_date(self.start_date) or None,
            'end_date': format_date(self.end_date) or None,
            'min_amount': self.min_amount,
            'max_amount': self.max_amount,
            'inflow_only': self.inflow_only,
            'outflow_only': self.outflow_only,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'RuleScope':
        if not data:
            return cls()
        return cls(
            account_id=_optional_str(data.get('account_id')),
            start_date=parse_date(data.get('start_date')),
            end_date=parse_date(data.get('end_date')),
            min_amount=parse_optional_amount(data.get('min_amount')),
            max_amount=parse_optional_amount(data.get('max_amount')),
            inflow_only=parse_flag(data.get('inflow_only')),
            outflow_only=parse_flag(data.get('outflow_only')),
        )


_SCOPE_FIELDS = ('account_id', 'start_date', 'end_date', 'min_amount',
                 'max_amount', 'inflow_only', 'outflow_only')


@dataclass
class Rule:
    """
    A categorization rule.

    Higher priority wins; among equal priorities the most recently
    updated rule wins.
    """
    id: str
    match_type: MatchType
    pattern: str
    category: str
    priority: int = 0
    enabled: bool = True
    scope: RuleScope = field(default_factory=RuleScope)
    labels: List[str] = field(default_factory=list)
    explain: str = ""
    source: RuleSource = RuleSource.USER_CREATED

    # Mining metadata
    support: int = 0
    confidence: Optional[float] = None
    amount: Optional[float] = None  # recurring rules only
    exception_of: Optional[RuleSource] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Candidate bookkeeping
    applied: bool = False
    actual_matches: int = 0
    coverage: float = 0.0

    @property
    def timestamp(self) -> datetime:
        """Most recent of updated_at / created_at, epoch when neither is set."""
        return self.updated_at or self.created_at or EPOCH

    @property
    def rule_type(self) -> RuleType:
        if self.source == RuleSource.USER_CREATED:
            return RuleType.USER_RULE
        if self.source == RuleSource.SYSTEM:
            return RuleType.SYSTEM_RULE
        return RuleType.AUTOGEN_RULE

    @property
    def pins_amount(self) -> bool:
        """
        Whether the rule only matches transactions of its amount.

        True for recurring rules, exceptions cloned from them, and user rules
        given an explicit amount.
        """
        pinned_source = (
            self.source in (RuleSource.RECURRING_ANALYSIS, RuleSource.USER_CREATED)
            or self.exception_of == RuleSource.RECURRING_ANALYSIS
        )
        return pinned_source and self.amount is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to its flat wire form."""
        data = {
            'id': self.id,
            'match_type': self.match_type.value,
            'pattern': self.pattern,
            'category': self.category,
            'priority': self.priority,
            'enabled': self.enabled,
            'labels': list(self.labels),
            'explain': self.explain,
            'source': self.source.value,
            'support': self.support,
            'confidence': self.confidence,
            'amount': self.amount,
            'exception_of': self.exception_of.value if self.exception_of else None,
            'created_at': format_timestamp(self.created_at),
            'updated_at': format_timestamp(self.updated_at),
            'applied': self.applied,
            'actual_matches': self.actual_matches,
            'coverage': self.coverage,
        }
        data.update(self.scope.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Rule':
        """
        Create a rule from its flat wire form.

        Scope fields may sit at the top level or under a 'scope' key, and
        'type' is accepted in place of 'match_type'.

        Raises:
            RuleFormatError: for a missing pattern, or an unknown match type
                or source
        """
        if not isinstance(data, Mapping):
            raise RuleFormatError(f"Rule must be a mapping, got {type(data).__name__}")

        match_type = _parse_enum(
            MatchType, data.get('match_type') or data.get('type'), MatchType.CONTAINS, 'match type'
        )
        source = _parse_enum(RuleSource, data.get('source'), RuleSource.USER_CREATED, 'rule source')
        exception_of = _parse_enum(RuleSource, data.get('exception_of'), None, 'rule source')

        pattern = data.get('pattern')
        if pattern is None and match_type != MatchType.INFLOW:
            raise RuleFormatError(f"Rule {data.get('id')!r} has no pattern")

        try:
            priority = max(0, int(data.get('priority') or 0))
        except (TypeError, ValueError):
            raise RuleFormatError(f"Invalid priority: {data.get('priority')!r}") from None

        scope_data = dict(data.get('scope') or {})
        for key in _SCOPE_FIELDS:
            if data.get(key) is not None:
                scope_data.setdefault(key, data[key])

        enabled = data.get('enabled')
        confidence = data.get('confidence')

        return cls(
            id=str(data.get('id') or ''),
            match_type=match_type,
            pattern='' if pattern is None else str(pattern),
            category=str(data.get('category') or ''),
            priority=priority,
            enabled=True if enabled is None else parse_flag(enabled),
            scope=RuleScope.from_dict(scope_data),
            labels=_labels(data.get('labels')),
            explain=str(data.get('explain') or ''),
            source=source,
            support=int(data.get('support') or 0),
            confidence=None if confidence is None else float(confidence),
            amount=parse_optional_amount(data.get('amount')),
            exception_of=exception_of,
            created_at=parse_timestamp(data.get('created_at')),
            updated_at=parse_timestamp(data.get('updated_at')),
            applied=parse_flag(data.get('applied')),
            actual_matches=int(data.get('actual_matches') or 0),
            coverage=float(data.get('coverage') or 0.0),
        )


def rule_sort_key(rule: Rule) -> Tuple[int, float]:
    """
    Sort key for rule precedence: priority descending, then most recent first.

    Use with a stable sort so that ties keep their input order.
    """
    return (-rule.priority, -rule.timestamp.timestamp())


# =============================================================================
# Transactions
# =============================================================================

def transaction_hash(data: Mapping[str, Any]) -> str:
    """
    Content hash of an imported transaction.

    SHA-256 over the JSON encoding of the identifying fields, truncated to
    32 hex characters. Missing fields are left out of the encoding.
    """
    identity = {}
    for key in ('external_id', 'account_id', 'date', 'name', 'description', 'amount', 'inflow'):
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        identity[key] = value
    raw = json.dumps(identity, separators=(',', ':'), ensure_ascii=False, default=str)
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()[:32]


@dataclass
class Transaction:
    """
    An imported bank or credit-card transaction and its categorization.
    """
    hash: str
    name: str = ""
    description: str = ""
    amount: float = 0.0  # signed, positive for money in
    inflow: bool = False
    date: Optional[date] = None
    id: Optional[str] = None
    external_id: Optional[str] = None
    account_id: Optional[str] = None
    mcc: Optional[str] = None
    merchant_id: Optional[str] = None

    # Categorization fields (populated by rule application)
    category: Optional[str] = None
    category_source: CategorySource = CategorySource.NONE
    category_explain: str = ""
    labels: List[str] = field(default_factory=list)
    manual_override: bool = False
    rule_id: Optional[str] = None
    rule_type: RuleType = RuleType.NONE

    @property
    def is_inflow(self) -> bool:
        return self.inflow

    @property
    def abs_amount(self) -> float:
        return abs(self.amount)

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary."""
        return {
            'hash': self.hash,
            'id': self.id,
            'external_id': self.external_id,
            'account_id': self.account_id,
            'date': format_date(self.date) or None,
            'name': self.name,
            'description': self.description,
            'amount': self.amount,
            'inflow': self.inflow,
            'mcc': self.mcc,
            'merchant_id': self.merchant_id,
            'category': self.category,
            'category_source': self.category_source.value,
            'category_explain': self.category_explain,
            'labels': list(self.labels),
            'manual_override': self.manual_override,
            'rule_id': self.rule_id,
            'rule_type': self.rule_type.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Transaction':
        """
        Create transaction from dictionary.

        The content hash is computed when the dictionary has none. The
        inflow flag defaults to the sign of the amount.
        """
        amount = parse_amount(data.get('amount'))
        inflow = data.get('inflow')
        category_source = _parse_enum(
            CategorySource, data.get('category_source'), CategorySource.NONE, 'category source',
            strict=False,
        )
        manual = parse_flag(data.get('manual_override')) or category_source == CategorySource.MANUAL

        return cls(
            hash=str(data.get('hash') or transaction_hash(data)),
            id=_optional_str(data.get('id')),
            external_id=_optional_str(data.get('external_id')),
            account_id=_optional_str(data.get('account_id')),
            date=parse_date(data.get('date')),
            name=str(data.get('name') or ''),
            description=str(data.get('description') or ''),
            amount=amount,
            inflow=amount > 0 if inflow is None else parse_flag(inflow),
            mcc=_optional_str(data.get('mcc')),
            merchant_id=_optional_str(data.get('merchant_id')),
            category=_optional_str(data.get('category')),
            category_source=category_source,
            category_explain=str(data.get('category_explain') or ''),
            labels=_labels(data.get('labels')),
            manual_override=manual,
            rule_id=_optional_str(data.get('rule_id')),
            rule_type=_parse_enum(RuleType, data.get('rule_type'), RuleType.NONE, 'rule type',
                                  strict=False),
        )


def as_transaction(value: Any) -> Transaction:
    """Accept a Transaction or its dictionary form."""
    if isinstance(value, Transaction):
        return value
    return Transaction.from_dict(value)


def as_rule(value: Any) -> Rule:
    """Accept a Rule or its dictionary form."""
    if isinstance(value, Rule):
        return value
    return Rule.from_dict(value)
