"""
Generator lookup by format id.

Generators are stateless, so one instance per format is created lazily and
shared by every caller.
"""

from typing import Optional

from ..exceptions import UnknownFormatError
from .base import BaseGenerator
from .cii import XRechnungCiiGenerator
from .facturx import FacturXBasicGenerator, FacturXEn16931Generator
from .fatturapa import FatturaPAGenerator
from .ksef import KsefGenerator
from .ubl import CiusRoGenerator, NlciusGenerator, PeppolBisGenerator, XRechnungUblGenerator

GENERATORS: dict[str, type[BaseGenerator]] = {
    "xrechnung-cii": XRechnungCiiGenerator,
    "xrechnung-ubl": XRechnungUblGenerator,
    "peppol-bis": PeppolBisGenerator,
    "facturx-en16931": FacturXEn16931Generator,
    "facturx-basic": FacturXBasicGenerator,
    "fatturapa": FatturaPAGenerator,
    "ksef": KsefGenerator,
    "nlcius": NlciusGenerator,
    "cius-ro": CiusRoGenerator,
}


class GeneratorFactory:
    """Creates and caches one generator per format id."""

    _instances: dict[str, BaseGenerator] = {}

    @classmethod
    def create(cls, format_id: Optional[str]) -> BaseGenerator:
        """
        Return the shared generator for a format.

        Raises:
            UnknownFormatError: If no generator is registered for format_id
        """
        generator_class = GENERATORS.get(format_id or "")
        if generator_class is None:
            raise UnknownFormatError(format_id)
        if format_id not in cls._instances:
            cls._instances[format_id] = generator_class()
        return cls._instances[format_id]

    @classmethod
    def get_available_formats(cls) -> list[str]:
        return list(GENERATORS)

    @classmethod
    def get_engine_versions(cls) -> dict[str, dict[str, str]]:
        """Engine and specification version of every generator, for audit trails."""
        return {
            format_id: {
                "name": generator_class.format_name,
                "version": generator_class.version,
                "spec_version": generator_class.spec_version,
                "spec_date": generator_class.spec_date,
            }
            for format_id, generator_class in GENERATORS.items()
        }

    @classmethod
    def clear(cls) -> None:
        cls._instances.clear()
