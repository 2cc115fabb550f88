"""
OASIS UBL 2.1 generators: XRechnung UBL and the PEPPOL BIS family.

One tree builder serves all four formats; they differ in the customization
id (BT-24) and in how strictly routing endpoints are expected.
"""

import xml.etree.ElementTree as ET
from typing import Optional

from ..config import DEFAULT_UNIT_CODE
from ..monetary import ZERO, derive_tax_category_code, format_amount, format_quantity, format_rate, round_money
from ..schemas import AllowanceCharge, CanonicalInvoice, LineItem, Party, TaxBreakdown
from .base import BaseGenerator, parse_iso_date, serialize, sub, sub_if
from .cii import PEPPOL_BUSINESS_PROCESS, XRECHNUNG_GUIDELINE, fallback_breakdown, line_category, line_rate

INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CREDIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"

ET.register_namespace("cac", CAC_NS)
ET.register_namespace("cbc", CBC_NS)

CAC = "{%s}" % CAC_NS
CBC = "{%s}" % CBC_NS

PEPPOL_CUSTOMIZATION = "urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0"
NLCIUS_CUSTOMIZATION = "urn:cen.eu:en16931:2017#compliant#urn:fdc:nen.nl:nlcius:v1.0"
CIUS_RO_CUSTOMIZATION = "urn:cen.eu:en16931:2017#compliant#urn:efactura.mfinante.ro:CIUS-RO:1.0.1"


def ubl_date(value: Optional[str]) -> Optional[str]:
    parsed = parse_iso_date(value)
    return parsed.isoformat() if parsed else None


class UblGenerator(BaseGenerator):
    """Builds a UBL Invoice, or a CreditNote for type code 381."""

    customization_id: str = PEPPOL_CUSTOMIZATION
    profile_id: str = PEPPOL_BUSINESS_PROCESS

    # PEPPOL delivery needs EndpointID on both parties
    requires_endpoints: bool = True

    required_elements = (
        "CustomizationID",
        "ProfileID",
        "ID",
        "IssueDate",
        "DocumentCurrencyCode",
        "AccountingSupplierParty",
        "AccountingCustomerParty",
        "TaxTotal",
        "LegalMonetaryTotal",
        "PayableAmount",
    )

    def build_xml(self, invoice: CanonicalInvoice, warnings: list[str]) -> str:
        credit = invoice.is_credit_note
        root_ns = CREDIT_NOTE_NS if credit else INVOICE_NS
        root = ET.Element("{%s}%s" % (root_ns, "CreditNote" if credit else "Invoice"))
        currency = invoice.currency

        sub(root, f"{CBC}CustomizationID", self.customization_id)
        sub(root, f"{CBC}ProfileID", self.profile_id)
        sub(root, f"{CBC}ID", invoice.invoice_number)
        sub(root, f"{CBC}IssueDate", ubl_date(invoice.invoice_date))
        if not credit:
            sub_if(root, f"{CBC}DueDate", ubl_date(invoice.payment.due_date))
            sub(root, f"{CBC}InvoiceTypeCode", invoice.document_type_code)
        else:
            sub(root, f"{CBC}CreditNoteTypeCode", invoice.document_type_code)
        sub_if(root, f"{CBC}Note", invoice.notes)
        sub(root, f"{CBC}DocumentCurrencyCode", currency)
        sub_if(root, f"{CBC}BuyerReference", invoice.buyer_reference)

        if invoice.billing_period_start or invoice.billing_period_end:
            period = sub(root, f"{CAC}InvoicePeriod")
            sub_if(period, f"{CBC}StartDate", ubl_date(invoice.billing_period_start))
            sub_if(period, f"{CBC}EndDate", ubl_date(invoice.billing_period_end))

        if invoice.preceding_invoice_reference:
            reference = sub(root, f"{CAC}BillingReference")
            sub(sub(reference, f"{CAC}InvoiceDocumentReference"), f"{CBC}ID", invoice.preceding_invoice_reference)

        self._add_party(root, f"{CAC}AccountingSupplierParty", invoice.seller, True, warnings)
        self._add_party(root, f"{CAC}AccountingCustomerParty", invoice.buyer, False, warnings)
        self._add_payment(root, invoice)

        breakdown = invoice.totals.tax_breakdown or fallback_breakdown(invoice)
        for ac in invoice.allowance_charges:
            self._add_allowance_charge(root, ac, breakdown, currency)
        self._add_tax_total(root, invoice, breakdown)
        self._add_monetary_total(root, invoice)

        for index, item in enumerate(invoice.line_items, 1):
            self._add_line(root, index, item, currency, credit)

        return serialize(root, default_namespace=root_ns)

    # ========================================================================
    # Building Blocks
    # ========================================================================

    def _add_party(
        self,
        parent: ET.Element,
        tag: str,
        party: Party,
        is_seller: bool,
        warnings: list[str],
    ) -> None:
        role = "Seller" if is_seller else "Buyer"
        element = sub(sub(parent, tag), f"{CAC}Party")

        if party.electronic_address:
            sub(element, f"{CBC}EndpointID", party.electronic_address, schemeID=party.electronic_address_scheme)
        elif self.requires_endpoints:
            warnings.append(f"{role} has no electronic address; EndpointID was omitted")

        address = sub(element, f"{CAC}PostalAddress")
        sub_if(address, f"{CBC}StreetName", party.address)
        sub_if(address, f"{CBC}CityName", party.city)
        sub_if(address, f"{CBC}PostalZone", party.postal_code)
        if party.country_code:
            sub(sub(address, f"{CAC}Country"), f"{CBC}IdentificationCode", party.country_code)

        if party.vat_id:
            tax_scheme = sub(element, f"{CAC}PartyTaxScheme")
            sub(tax_scheme, f"{CBC}CompanyID", party.vat_id)
            sub(sub(tax_scheme, f"{CAC}TaxScheme"), f"{CBC}ID", "VAT")
        if is_seller and party.tax_number:
            tax_scheme = sub(element, f"{CAC}PartyTaxScheme")
            sub(tax_scheme, f"{CBC}CompanyID", party.tax_number)
            sub(sub(tax_scheme, f"{CAC}TaxScheme"), f"{CBC}ID", "FC")

        legal = sub(element, f"{CAC}PartyLegalEntity")
        sub(legal, f"{CBC}RegistrationName", party.name)

        if party.contact_name or party.phone or party.email:
            contact = sub(element, f"{CAC}Contact")
            sub_if(contact, f"{CBC}Name", party.contact_name or (party.name if is_seller else None))
            sub_if(contact, f"{CBC}Telephone", party.phone)
            sub_if(contact, f"{CBC}ElectronicMail", party.email)

    def _add_payment(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        payment = invoice.payment
        means = sub(parent, f"{CAC}PaymentMeans")
        if payment.iban:
            sub(means, f"{CBC}PaymentMeansCode", "58")
            sub(means, f"{CBC}PaymentID", invoice.invoice_number)
            account = sub(means, f"{CAC}PayeeFinancialAccount")
            sub(account, f"{CBC}ID", payment.iban)
            if payment.bic:
                sub(sub(account, f"{CAC}FinancialInstitutionBranch"), f"{CBC}ID", payment.bic)
        else:
            sub(means, f"{CBC}PaymentMeansCode", "1")

        if payment.payment_terms:
            sub(sub(parent, f"{CAC}PaymentTerms"), f"{CBC}Note", payment.payment_terms)

    def _add_tax_category(self, parent: ET.Element, tag: str, category: str, rate) -> None:
        element = sub(parent, tag)
        sub(element, f"{CBC}ID", category)
        if category != "O":
            sub(element, f"{CBC}Percent", format_rate(rate))
        if category == "E":
            sub(element, f"{CBC}TaxExemptionReason", "Exempt from VAT")
        sub(sub(element, f"{CAC}TaxScheme"), f"{CBC}ID", "VAT")

    def _add_allowance_charge(
        self,
        parent: ET.Element,
        ac: AllowanceCharge,
        breakdown: list[TaxBreakdown],
        currency: str,
    ) -> None:
        if ac.tax_rate is not None or ac.tax_category_code:
            rate = ac.tax_rate if ac.tax_rate is not None else ZERO
            category = ac.tax_category_code or derive_tax_category_code(rate)
        else:
            dominant = max(breakdown, key=lambda g: g.taxable_amount)
            rate, category = dominant.tax_rate, dominant.tax_category_code

        element = sub(parent, f"{CAC}AllowanceCharge")
        sub(element, f"{CBC}ChargeIndicator", "true" if ac.charge_indicator else "false")
        sub_if(element, f"{CBC}AllowanceChargeReasonCode", ac.reason_code)
        sub_if(element, f"{CBC}AllowanceChargeReason", ac.reason)
        sub(element, f"{CBC}Amount", format_amount(ac.amount), currencyID=currency)
        self._add_tax_category(element, f"{CAC}TaxCategory", category, rate)

    def _add_tax_total(self, parent: ET.Element, invoice: CanonicalInvoice, breakdown: list[TaxBreakdown]) -> None:
        currency = invoice.currency
        tax_total = sub(parent, f"{CAC}TaxTotal")
        sub(tax_total, f"{CBC}TaxAmount", format_amount(invoice.totals.tax_amount), currencyID=currency)
        for group in breakdown:
            subtotal = sub(tax_total, f"{CAC}TaxSubtotal")
            sub(subtotal, f"{CBC}TaxableAmount", format_amount(group.taxable_amount), currencyID=currency)
            sub(subtotal, f"{CBC}TaxAmount", format_amount(group.tax_amount), currencyID=currency)
            self._add_tax_category(subtotal, f"{CAC}TaxCategory", group.tax_category_code, group.tax_rate)

    def _add_monetary_total(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        totals = invoice.totals
        currency = invoice.currency
        prepaid = round_money(invoice.payment.prepaid_amount or 0)

        monetary = sub(parent, f"{CAC}LegalMonetaryTotal")
        sub(monetary, f"{CBC}LineExtensionAmount", format_amount(totals.subtotal), currencyID=currency)
        sub(monetary, f"{CBC}TaxExclusiveAmount", format_amount(totals.tax_basis_total), currencyID=currency)
        sub(monetary, f"{CBC}TaxInclusiveAmount", format_amount(totals.total_amount), currencyID=currency)
        if invoice.allowance_charges:
            sub(monetary, f"{CBC}AllowanceTotalAmount", format_amount(totals.allowance_total), currencyID=currency)
            sub(monetary, f"{CBC}ChargeTotalAmount", format_amount(totals.charge_total), currencyID=currency)
        if prepaid:
            sub(monetary, f"{CBC}PrepaidAmount", format_amount(prepaid), currencyID=currency)
        sub(monetary, f"{CBC}PayableAmount", format_amount(totals.total_amount - prepaid), currencyID=currency)

    def _add_line(self, parent: ET.Element, index: int, item: LineItem, currency: str, credit: bool) -> None:
        line = sub(parent, f"{CAC}CreditNoteLine" if credit else f"{CAC}InvoiceLine")
        sub(line, f"{CBC}ID", index)
        sub(
            line,
            f"{CBC}CreditedQuantity" if credit else f"{CBC}InvoicedQuantity",
            format_quantity(item.quantity),
            unitCode=item.unit_code or DEFAULT_UNIT_CODE,
        )
        sub(line, f"{CBC}LineExtensionAmount", format_amount(item.total_price), currencyID=currency)

        product = sub(line, f"{CAC}Item")
        sub(product, f"{CBC}Name", item.description or "Item")
        category = line_category(item)
        tax = sub(product, f"{CAC}ClassifiedTaxCategory")
        sub(tax, f"{CBC}ID", category)
        if category != "O":
            sub(tax, f"{CBC}Percent", format_rate(line_rate(item)))
        sub(sub(tax, f"{CAC}TaxScheme"), f"{CBC}ID", "VAT")

        price = sub(line, f"{CAC}Price")
        sub(price, f"{CBC}PriceAmount", format_amount(item.unit_price), currencyID=currency)


class XRechnungUblGenerator(UblGenerator):
    """XRechnung 3.0 in UBL syntax."""

    format_id = "xrechnung-ubl"
    format_name = "XRechnung 3.0 (UBL)"
    spec_version = "3.0"
    spec_date = "2024-02-01"
    customization_id = XRECHNUNG_GUIDELINE
    requires_endpoints = False


class PeppolBisGenerator(UblGenerator):
    """PEPPOL BIS Billing 3.0."""

    format_id = "peppol-bis"
    format_name = "PEPPOL BIS Billing 3.0"
    spec_version = "3.0.18"
    spec_date = "2024-11-15"
    customization_id = PEPPOL_CUSTOMIZATION


class NlciusGenerator(UblGenerator):
    """Dutch NLCIUS (SI-UBL 2.0)."""

    format_id = "nlcius"
    format_name = "NLCIUS / SI-UBL 2.0 (Netherlands)"
    spec_version = "2.0"
    spec_date = "2023-05-01"
    customization_id = NLCIUS_CUSTOMIZATION


class CiusRoGenerator(UblGenerator):
    """Romanian CIUS-RO for RO e-Factura."""

    format_id = "cius-ro"
    format_name = "CIUS-RO (Romania)"
    spec_version = "1.0.1"
    spec_date = "2022-01-01"
    customization_id = CIUS_RO_CUSTOMIZATION
