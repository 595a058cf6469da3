"""
Configuration utilities for FondCAS.

Provides configuration loading, validation and merging for the normalizer,
match scorer, resolver, pattern builder and availability predictor.
"""

import copy
import logging
import yaml
from typing import Dict, Any
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/fondcas.yaml"


def get_default_config() -> Dict[str, Any]:
    """
    Get default FondCAS configuration.

    Returns:
        Default configuration dictionary
    """
    return {
        "version": "2026.1",
        "normalization": {
            "name": {
                "legal_prefixes": ["sc", "cmi", "smi"],
                "legal_suffixes": ["srl", "srld", "sa", "pfa", "ii", "if", "snc", "scs", "sca", "scm"],
                "fold_diacritics": True
            },
            "email": {
                "generic_domains": [
                    "gmail.com", "yahoo.com", "yahoo.ro", "yahoo.co.uk",
                    "hotmail.com", "hotmail.ro", "outlook.com",
                    "mail.com", "email.com", "icloud.com",
                    "live.com", "msn.com", "aol.com",
                    "protonmail.com", "zoho.com",
                    "yaho.com", "gmai.com"
                ]
            },
            "phone": {
                "country_code": "40",
                "min_digits": 6
            },
            "address": {
                "fold_diacritics": True,
                "street_types": {
                    "bulevardul": "bd", "bulevard": "bd", "b-dul": "bd", "bdul": "bd", "bd": "bd", "blvd": "bd",
                    "strada": "str", "str": "str",
                    "calea": "cal", "cal": "cal",
                    "soseaua": "sos", "sos": "sos", "sos-ua": "sos",
                    "prelungirea": "prel", "prel": "prel",
                    "aleea": "al", "al": "al",
                    "piata": "pta", "pta": "pta",
                    "splaiul": "spl", "spl": "spl",
                    "intrarea": "intr", "intr": "intr"
                },
                "number_markers": ["numar", "numarul", "nr"],
                "sector_markers": ["sectorul", "sector", "sect", "sec"],
                "building_markers": ["bloc", "bl", "scara", "sc", "apartament", "ap", "etaj", "et"],
                "filler_words": ["loc", "localitatea", "judet", "judetul", "jud",
                                 "bucuresti", "municipiul", "mun", "oras", "orasul"]
            }
        },
        "matching": {
            "weights": {
                "tax_id": 1000,
                "business_email": 100,
                "phone": 50,
                "address": 50,
                "name_exact": 50,
                "name_similar": 30
            },
            "threshold": 80,
            "name_similarity_min": 80
        },
        "merge": {
            "canonical_id": {
                "algorithm": "uuid4"
            },
            "derived_location_confidence": 50,
            "brand_names": {
                "email_domains": {},
                "address_keys": {},
                "legal_names": {}
            }
        },
        "patterns": {
            "min_data_points": 6,
            "max_valid_rate": 2.0,
            "early_depletion_rate": 0.9,
            "days_per_month": 30
        },
        "prediction": {
            "locale": "ro",
            "fallback_daily_rate": 1.0 / 30,
            "report_decay_hours": 24,
            "report_weights": {
                "funds_available": 0.2,
                "funds_exhausted": -0.4
            },
            "confidence": {
                "base": 30,
                "max": 95,
                "no_allocation": 20,
                "recent_report_bonus": 15,
                "recent_report_hours": 24,
                "data_points": [[24, 30], [12, 20], [6, 10]]
            },
            "risk": {
                "high_probability": 0.3,
                "late_month_probability": 0.5,
                "late_month_day": 20,
                "early_depletion_frequency": 0.5,
                "early_depletion_high_day": 15,
                "early_depletion_medium_day": 10,
                "medium_probability": 0.6
            },
            "estimator": {
                "exhausted_share": 0.95,
                "limited_share": 0.8,
                "low_remaining_share": 0.2,
                "report_window_hours": 48,
                "report_age_hours": [6, 24],
                "confidence": {
                    "consumed_exhausted": 90,
                    "consumed_limited": 70,
                    "consumed_available": 85,
                    "report_exhausted": [90, 75, 60],
                    "report_available": [85, 70, 55]
                },
                "weeks": [[7, 75], [15, 60], [22, 45], [31, 40]]
            },
            "category_aliases": {
                "paraclinic": "paraclinic", "paraclinical": "paraclinic", "paraclinice": "paraclinic",
                "recovery": "recovery", "recuperare": "recovery",
                "clinic": "clinic", "clinical": "clinic", "clinice": "clinic"
            },
            "seasonal_multipliers": {
                "paraclinic": {1: 0.85, 2: 0.95, 3: 1.0, 4: 1.0, 5: 1.0, 6: 0.9,
                               7: 0.85, 8: 0.8, 9: 1.1, 10: 1.1, 11: 1.05, 12: 1.15},
                "recovery": {1: 0.9, 2: 1.0, 3: 1.0, 4: 1.0, 5: 0.95, 6: 0.85,
                             7: 0.8, 8: 0.75, 9: 1.1, 10: 1.1, 11: 1.0, 12: 1.1},
                "clinic": {1: 0.88, 2: 0.95, 3: 1.02, 4: 1.0, 5: 0.98, 6: 0.92,
                           7: 0.85, 8: 0.82, 9: 1.08, 10: 1.05, 11: 1.02, 12: 1.12},
                "default": {1: 0.9, 2: 0.95, 3: 1.0, 4: 1.0, 5: 1.0, 6: 0.95,
                            7: 0.9, 8: 0.85, 9: 1.05, 10: 1.05, 11: 1.0, 12: 1.1}
            }
        },
        "storage": {
            "db_path": "data/fondcas.db",
            "report_window_hours": 48,
            "run_lock_stale_seconds": 3600
        },
        "audit": {
            "db_path": "data/audit.db"
        }
    }


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load FondCAS configuration from YAML file, merged over the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    defaults = get_default_config()

    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Configuration file {config_path} not found, using defaults")
            return defaults

        with open(config_file, 'r', encoding='utf-8') as f:
            file_config = yaml.safe_load(f) or {}

        if not isinstance(file_config, dict):
            logger.error(f"Configuration file {config_path} does not contain a mapping, using defaults")
            return defaults

        config = merge_configs(defaults, file_config)
        logger.info(f"Loaded configuration version {config.get('version')} from {config_path}")
        return config

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration from {config_path}: {e}")
        return defaults


def resolve_config(config: Dict[str, Any] = None) -> Dict[str, Any]:
    """Return a complete configuration, filling anything missing from the defaults."""
    if config is None:
        return get_default_config()
    return merge_configs(get_default_config(), config)


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate FondCAS configuration.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ["normalization", "matching", "patterns", "prediction"]

    for section in required_sections:
        if section not in config:
            logger.error(f"Missing required configuration section: {section}")
            return False

    # Validate name configuration
    name_config = config["normalization"].get("name", {})
    for key in ["legal_prefixes", "legal_suffixes"]:
        if not isinstance(name_config.get(key, []), list):
            logger.error(f"normalization.name.{key} must be a list")
            return False

    street_types = config["normalization"].get("address", {}).get("street_types", {})
    if not isinstance(street_types, dict):
        logger.error("normalization.address.street_types must be a mapping")
        return False

    # Validate matching configuration
    matching = config["matching"]
    weights = matching.get("weights", {})
    threshold = matching.get("threshold", 80)
    if not isinstance(threshold, (int, float)) or threshold <= 0:
        logger.error("matching.threshold must be a positive number")
        return False

    if weights.get("tax_id", 1000) <= threshold:
        logger.error("matching.weights.tax_id must exceed matching.threshold")
        return False

    # Validate pattern configuration
    min_points = config["patterns"].get("min_data_points", 6)
    if not isinstance(min_points, int) or min_points < 1:
        logger.error("patterns.min_data_points must be a positive integer")
        return False

    # Validate seasonal tables
    seasonal = config["prediction"].get("seasonal_multipliers", {})
    if "default" not in seasonal:
        logger.error("prediction.seasonal_multipliers must define a 'default' table")
        return False

    for category, table in seasonal.items():
        months = {int(m) for m in table}
        if not months.issubset(set(range(1, 13))):
            logger.error(f"prediction.seasonal_multipliers.{category} has invalid month keys")
            return False

    logger.info("Configuration validation passed")
    return True


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def save_config(config: Dict[str, Any], config_path: str) -> bool:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config, f, default_flow_style=False, indent=2, allow_unicode=True)

        logger.info(f"Saved configuration to {config_path}")
        return True

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False
