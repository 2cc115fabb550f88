"""
Format generators: one class per e-invoice format, looked up through GeneratorFactory.
"""

from .base import BaseGenerator
from .cii import CiiGenerator, XRechnungCiiGenerator
from .facturx import FacturXBasicGenerator, FacturXEn16931Generator, FacturXGenerator
from .factory import GENERATORS, GeneratorFactory
from .fatturapa import FatturaPAGenerator
from .ksef import KsefGenerator
from .ubl import CiusRoGenerator, NlciusGenerator, PeppolBisGenerator, UblGenerator, XRechnungUblGenerator

__all__ = [
    "BaseGenerator",
    "CiiGenerator",
    "CiusRoGenerator",
    "FacturXBasicGenerator",
    "FacturXEn16931Generator",
    "FacturXGenerator",
    "FatturaPAGenerator",
    "GENERATORS",
    "GeneratorFactory",
    "KsefGenerator",
    "NlciusGenerator",
    "PeppolBisGenerator",
    "UblGenerator",
    "XRechnungCiiGenerator",
    "XRechnungUblGenerator",
]
