"""
Configuration and constants for the transaction bucket sorter.

This module provides:
- Default thresholds for rule application and rule mining
- The category taxonomy and the keyword groups used to guess categories
- Support for user-configurable settings via environment variables
- Loading overrides from a YAML file
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: str = "Transaction Bucket Sorter"
APP_VERSION: str = "1.0.0"

# =============================================================================
# Category Taxonomy
# =============================================================================

CATEGORIES: Dict[str, str] = {
    "fixed_costs": "Fixed Costs",
    "investments": "Investments",
    "guilt_free": "Guilt Free",
    "short_term_savings": "Short Term Savings",
}

# =============================================================================
# Date Formats
# =============================================================================

# Supported date formats in order of preference
DATE_FORMATS: List[str] = [
    "%Y-%m-%d",      # YYYY-MM-DD (ISO format, used by imports)
    "%Y/%m/%d",      # YYYY/MM/DD
    "%m/%d/%Y",      # MM/DD/YYYY (North American bank exports)
    "%m/%d/%y",      # MM/DD/YY
    "%d %b %Y",      # DD MMM YYYY (like "15 Jan 2025")
    "%b %d, %Y",     # MMM DD, YYYY (like "Jan 15, 2025")
    "%Y%m%d",        # YYYYMMDD (OFX style)
]

# =============================================================================
# Rule Application
# =============================================================================

# Recurring rules only match amounts within this distance of the mined amount
AMOUNT_TOLERANCE: float = 0.01

# Priority bands. User rules sit above every mined rule, exceptions included.
SYSTEM_RULE_PRIORITY_CEILING: int = 49
EXCEPTION_RULE_PRIORITY: int = 2000
USER_RULE_PRIORITY_FLOOR: int = EXCEPTION_RULE_PRIORITY

TRANSFER_LABEL: str = "transfer"

# =============================================================================
# Rule Mining
# =============================================================================

MIN_FREQUENCY: int = int(os.environ.get("BUCKETSORTER_MIN_FREQUENCY", "2"))
MAX_RULES_PER_IMPORT: int = int(os.environ.get("BUCKETSORTER_MAX_RULES", "50"))

# Share of categorized supporting transactions that must agree on a category
MIN_CATEGORY_CONFIDENCE: float = 0.8

RECURRING_MIN_OCCURRENCES: int = 3
RECURRING_CADENCE_DAYS: int = 30
RECURRING_TOLERANCE_DAYS: int = 10
RECURRING_MIN_CONSISTENCY: float = 0.8

# Spending above this (absolute) amount is treated as saved-up-for
LARGE_AMOUNT_THRESHOLD: float = float(
    os.environ.get("BUCKETSORTER_LARGE_AMOUNT", "500")
)

# Keyword groups used by the category policy when guessing a category
# for a mined rule. Matched on word boundaries against normalized text.
CATEGORY_KEYWORD_GROUPS: Dict[str, List[str]] = {
    "groceries": [
        "grocery", "groceries", "supermarket", "market", "costco", "walmart",
        "loblaws", "sobeys", "metro", "safeway", "kroger", "whole foods",
        "trader joe", "aldi", "nofrills", "freshco", "instacart",
    ],
    "essential_food": [
        "bakery", "butcher", "produce", "farm", "dairy", "pharmacy",
        "shoppers drug mart",
    ],
    "restaurants": [
        "restaurant", "mcdonalds", "subway", "burger", "pizza", "sushi",
        "grill", "diner", "bistro", "kitchen", "taco", "wendys", "kfc",
        "doordash", "ubereats", "uber eats", "skipthedishes",
    ],
    "coffee": [
        "coffee", "cafe", "starbucks", "timhortons", "espresso", "tea",
        "second cup", "dunkin",
    ],
    "automotive": [
        "gas", "fuel", "petro", "shell", "esso", "chevron", "parking",
        "auto", "tire", "car wash", "oil change", "mechanic",
    ],
}

# Which bucket each keyword group maps to
KEYWORD_GROUP_CATEGORIES: Dict[str, str] = {
    "groceries": "fixed_costs",
    "essential_food": "fixed_costs",
    "restaurants": "guilt_free",
    "coffee": "guilt_free",
    "automotive": "fixed_costs",
}

# Merchant category codes with a known bucket
MCC_CATEGORY_MAPPING: Dict[str, str] = {
    "4111": "fixed_costs",   # Transportation
    "4121": "fixed_costs",   # Taxi/limo
    "4131": "fixed_costs",   # Bus lines
    "4511": "fixed_costs",   # Airlines
    "4900": "fixed_costs",   # Utilities
    "5311": "fixed_costs",   # Department stores
    "5411": "fixed_costs",   # Grocery stores
    "5541": "guilt_free",    # Gas stations
    "5812": "guilt_free",    # Eating places
    "5813": "guilt_free",    # Drinking places
    "5814": "guilt_free",    # Fast food
    "5993": "guilt_free",    # Cigar stores
    "5994": "guilt_free",    # News dealers
    "5995": "guilt_free",    # Pet shops
    "5999": "guilt_free",    # Miscellaneous retail
    "7011": "guilt_free",    # Hotels
}
# Financial institutions
MCC_CATEGORY_MAPPING.update({str(code): "guilt_free" for code in range(6010, 6100)})

DEFAULT_MCC_CATEGORY: str = "fixed_costs"

# Payment marketplaces, matched against the raw merchant name
MARKETPLACE_PATTERNS: Dict[str, str] = {
    "amazon": r"amzn|amazon",
    "paypal": r"paypal|\bpp\b",
    "square": r"square|\bsq\b",
    "stripe": r"stripe",
}

# Sub-keywords that identify what was bought through a marketplace
MARKETPLACE_KEYWORDS: Dict[str, Dict[str, str]] = {
    "amazon": {
        "kindle": "fixed_costs",
        "fresh": "fixed_costs",
        "prime": "fixed_costs",
        "aws": "fixed_costs",
    },
    "paypal": {
        "ebay": "guilt_free",
        "spotify": "fixed_costs",
    },
    "square": {
        "cafe": "guilt_free",
        "coffee": "guilt_free",
    },
    "stripe": {
        "patreon": "guilt_free",
        "substack": "guilt_free",
    },
}


def get_category_name(category: Optional[str]) -> str:
    """Get the display name for a category key (unknown keys pass through)."""
    if not category:
        return "Uncategorized"
    return CATEGORIES.get(category, category)


# =============================================================================
# Flexible Configuration System
# =============================================================================

class Config:
    """
    Flexible configuration manager that supports:
    - Environment variables
    - Custom YAML configuration files
    - Runtime overrides
    """

    _instance: Optional["Config"] = None
    _settings: Dict[str, Any] = {}
    _keyword_groups: Dict[str, List[str]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_defaults()
            cls._instance._load_custom_config()
        return cls._instance

    def _load_defaults(self) -> None:
        """Load default settings."""
        self._settings = {
            # Mining settings
            "min_frequency": int(os.environ.get("BUCKETSORTER_MIN_FREQUENCY", MIN_FREQUENCY)),
            "max_rules_per_import": int(os.environ.get("BUCKETSORTER_MAX_RULES", MAX_RULES_PER_IMPORT)),
            "large_amount_threshold": float(
                os.environ.get("BUCKETSORTER_LARGE_AMOUNT", LARGE_AMOUNT_THRESHOLD)
            ),

            # Categorization settings
            "system_rules_path": os.environ.get(
                "BUCKETSORTER_SYSTEM_RULES",
                str(Path(__file__).parent / "categorizer" / "system_rules.yaml"),
            ),
            "detect_transfers": os.environ.get(
                "BUCKETSORTER_DETECT_TRANSFERS", "true"
            ).lower() == "true",
        }
        self._keyword_groups = {}

    def _load_custom_config(self) -> None:
        """Load custom configuration from YAML file if available."""
        config_paths = [
            Path.cwd() / "config.yaml",
            Path.cwd() / "config.yml",
            Path(__file__).parent / "config.yaml",
            Path.home() / ".bucketsorter" / "config.yaml",
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        custom_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load config from %s: %s", config_path, e)
                    continue

                if not isinstance(custom_config, dict):
                    logger.warning("Ignoring %s: expected a mapping at top level", config_path)
                    continue

                self._keyword_groups = custom_config.pop("keyword_groups", None) or {}
                self._settings.update(custom_config)
                logger.info("Loaded config from %s", config_path)
                break

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value at runtime."""
        self._settings[key] = value

    @property
    def keyword_groups(self) -> Dict[str, List[str]]:
        """Category keyword groups, with any overrides from config.yaml applied."""
        groups = {name: list(words) for name, words in CATEGORY_KEYWORD_GROUPS.items()}
        for name, words in self._keyword_groups.items():
            if isinstance(words, list):
                groups[name] = [str(w).lower() for w in words]
        return groups

    def reload(self) -> None:
        """Reload configuration from environment and files."""
        self._load_defaults()
        self._load_custom_config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
