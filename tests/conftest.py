"""
Shared extraction-record fixtures.

Records use the loose camelCase keys an extraction step produces; tests copy
them before changing anything.
"""

import pytest


@pytest.fixture
def inv1_record() -> dict:
    """Minimal record: one line, no parties."""
    return {
        "invoiceNumber": "INV-1",
        "invoiceDate": "2024-01-15",
        "lineItems": [{"description": "Consulting", "unitPrice": 100, "quantity": 2, "taxRate": 19}],
        "currency": "EUR",
        "format": "xrechnung-cii",
    }


@pytest.fixture
def xrechnung_record(inv1_record) -> dict:
    """INV-1 with every field XRechnung requires."""
    return {
        **inv1_record,
        "buyerReference": "04011000-12345-03",
        "sellerName": "Muster GmbH",
        "sellerStreet": "Hauptstraße 1",
        "sellerCity": "Berlin",
        "sellerPostalCode": "10115",
        "sellerCountryCode": "DE",
        "sellerVatId": "DE123456789",
        "sellerPhone": "+49 30 123456",
        "sellerEmail": "billing@muster.de",
        "sellerContactName": "Erika Mustermann",
        "sellerIban": "DE89 3704 0044 0532 0130 00",
        "buyerName": "Stadtverwaltung Köln",
        "buyerStreet": "Rathausplatz 2",
        "buyerCity": "Köln",
        "buyerPostalCode": "50667",
        "buyerCountryCode": "DE",
        "buyerEmail": "rechnung@stadt-koeln.de",
        "paymentTerms": "Zahlbar innerhalb von 30 Tagen",
    }


@pytest.fixture
def peppol_record() -> dict:
    """Belgian seller with a PEPPOL endpoint; the buyer has no endpoint and no email."""
    return {
        "invoiceNumber": "BE-2024-17",
        "invoiceDate": "2024-03-01",
        "format": "peppol-bis",
        "currency": "EUR",
        "sellerName": "Exemple SPRL",
        "sellerStreet": "Rue Neuve 10",
        "sellerCity": "Bruxelles",
        "sellerPostalCode": "1000",
        "sellerCountryCode": "BE",
        "sellerVatId": "BE0123456789",
        "sellerElectronicAddress": "0123456789",
        "sellerElectronicAddressScheme": "0208",
        "buyerName": "Voorbeeld BV",
        "buyerCountryCode": "NL",
        "paymentTerms": "30 days",
        "lineItems": [
            {"description": "Licence", "quantity": 1, "unitPrice": 500, "taxRate": 21, "taxCategoryCode": "S"},
        ],
    }


@pytest.fixture
def ksef_record() -> dict:
    """Polish seller with one line at a non-statutory 19% rate."""
    return {
        "invoiceNumber": "FV/2024/03/001",
        "invoiceDate": "2024-03-05",
        "format": "ksef",
        "currency": "PLN",
        "sellerName": "Przykład Sp. z o.o.",
        "sellerStreet": "ul. Marszałkowska 1",
        "sellerCity": "Warszawa",
        "sellerPostalCode": "00-001",
        "sellerCountryCode": "PL",
        "sellerVatId": "PL1234567890",
        "buyerName": "Odbiorca S.A.",
        "buyerVatId": "PL9876543210",
        "lineItems": [{"description": "Usługa", "quantity": 2, "unitPrice": 100, "taxRate": 19}],
    }


@pytest.fixture
def fatturapa_record() -> dict:
    return {
        "invoiceNumber": "2024/15",
        "invoiceDate": "2024-02-10",
        "format": "fatturapa",
        "currency": "EUR",
        "sellerName": "Esempio S.r.l.",
        "sellerStreet": "Via Roma 1",
        "sellerCity": "Milano",
        "sellerPostalCode": "20121",
        "sellerCountryCode": "IT",
        "sellerVatId": "IT01234567890",
        "buyerName": "Cliente S.p.A.",
        "buyerVatId": "IT09876543210",
        "buyerCodiceDestinatario": "ABC1234",
        "lineItems": [{"description": "Servizio", "quantity": 1, "unitPrice": 1000, "taxRate": 22}],
    }
