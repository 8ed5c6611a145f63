"""
Settings extraction and replay for the Desktop Migrator
"""

from .categories import CATEGORIES, SettingCategory, Strategy, get_category
from .extractor import ExtractedSetting, ExtractionResult, ExtractionKind, SettingsExtractor
from .applier import SettingsApplier

__all__ = [
    'CATEGORIES',
    'SettingCategory',
    'Strategy',
    'get_category',
    'ExtractedSetting',
    'ExtractionResult',
    'ExtractionKind',
    'SettingsExtractor',
    'SettingsApplier',
]
