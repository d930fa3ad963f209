from typing import Dict, Any, List, Optional, Type
import logging

from ..normalization.normalizer import LogNormalizer
from .base import VendorAdapter
from .aws_ingestion import AWSIngestion
from .office365_ingestion import Office365Ingestion
from .sophos_ingestion import SophosIngestion


ADAPTERS: Dict[str, Type[VendorAdapter]] = {
    AWSIngestion.moduleName: AWSIngestion,
    Office365Ingestion.moduleName: Office365Ingestion,
    SophosIngestion.moduleName: SophosIngestion,
}

logger = logging.getLogger(__name__)


def availableModules() -> List[str]:
    return sorted(ADAPTERS)


def createAdapter(
    moduleName: str,
    config: Optional[Dict[str, Any]] = None,
    normalizer: Optional[LogNormalizer] = None
) -> VendorAdapter:
    """
    Build the adapter for an integration module.

    Raises:
        ValueError: If no adapter handles ``moduleName``
    """
    adapterClass = ADAPTERS.get(moduleName.lower())
    if adapterClass is None:
        raise ValueError(f"Unknown module '{moduleName}', expected one of: {', '.join(availableModules())}")

    adapter = adapterClass(config or {}, normalizer)
    logger.info(f"{adapterClass.__name__} adapter initialized ({adapter.strategy.value})")
    return adapter
