"""
UN/CEFACT Cross Industry Invoice (CII D16B) generator.

Element order follows the CII schema; EN 16931 business terms are noted
where the mapping is not obvious from the element name.
"""

import xml.etree.ElementTree as ET
from decimal import Decimal
from typing import Optional

from ..config import DEFAULT_UNIT_CODE
from ..monetary import (
    ZERO,
    derive_tax_category_code,
    format_amount,
    format_quantity,
    format_rate,
    round_money,
)
from ..schemas import AllowanceCharge, CanonicalInvoice, LineItem, Party, TaxBreakdown
from .base import BaseGenerator, parse_iso_date, serialize, sub, sub_if

NAMESPACES = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
    "qdt": "urn:un:unece:uncefact:data:standard:QualifiedDataType:100",
}

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)

RSM = "{%s}" % NAMESPACES["rsm"]
RAM = "{%s}" % NAMESPACES["ram"]
UDT = "{%s}" % NAMESPACES["udt"]

PEPPOL_BUSINESS_PROCESS = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
XRECHNUNG_GUIDELINE = "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0"

# Payment means (UNCL4461): SEPA credit transfer, instrument not defined
PAYMENT_MEANS_SEPA = "58"
PAYMENT_MEANS_UNDEFINED = "1"


def cii_date(value: Optional[str]) -> Optional[str]:
    """Format an ISO date as YYYYMMDD (format 102)."""
    parsed = parse_iso_date(value)
    return parsed.strftime("%Y%m%d") if parsed else None


def line_category(item: LineItem) -> str:
    return item.tax_category_code or derive_tax_category_code(item.tax_rate)


def line_rate(item: LineItem) -> Decimal:
    return item.tax_rate if item.tax_rate is not None else ZERO


def fallback_breakdown(invoice: CanonicalInvoice) -> list[TaxBreakdown]:
    """
    Tax breakdown for documents without lines.

    The rate is inferred from the extracted totals so that the breakdown
    still adds up to the stated tax amount.
    """
    totals = invoice.totals
    basis = totals.tax_basis_total
    rate = round_money(totals.tax_amount / basis * 100) if basis else ZERO
    return [
        TaxBreakdown(
            tax_rate=rate,
            tax_category_code=derive_tax_category_code(rate),
            taxable_amount=round_money(basis),
            tax_amount=totals.tax_amount,
        )
    ]


class CiiGenerator(BaseGenerator):
    """
    Builds the CII tree shared by XRechnung CII and Factur-X.

    Subclasses choose the guideline (BT-24) and business process (BT-23).
    """

    guideline_id: str = XRECHNUNG_GUIDELINE
    business_process: Optional[str] = PEPPOL_BUSINESS_PROCESS

    required_elements = (
        "CrossIndustryInvoice",
        "ExchangedDocumentContext",
        "GuidelineSpecifiedDocumentContextParameter",
        "ExchangedDocument",
        "SupplyChainTradeTransaction",
        "ApplicableHeaderTradeAgreement",
        "SellerTradeParty",
        "BuyerTradeParty",
        "ApplicableHeaderTradeDelivery",
        "ApplicableHeaderTradeSettlement",
        "InvoiceCurrencyCode",
        "SpecifiedTradeSettlementHeaderMonetarySummation",
        "GrandTotalAmount",
        "DuePayableAmount",
    )

    def build_xml(self, invoice: CanonicalInvoice, warnings: list[str]) -> str:
        return serialize(self.build_tree(invoice, warnings))

    def build_tree(self, invoice: CanonicalInvoice, warnings: list[str]) -> ET.Element:
        root = ET.Element(f"{RSM}CrossIndustryInvoice")

        context = sub(root, f"{RSM}ExchangedDocumentContext")
        if self.business_process:
            sub(sub(context, f"{RAM}BusinessProcessSpecifiedDocumentContextParameter"), f"{RAM}ID", self.business_process)
        sub(sub(context, f"{RAM}GuidelineSpecifiedDocumentContextParameter"), f"{RAM}ID", self.guideline_id)

        document = sub(root, f"{RSM}ExchangedDocument")
        sub(document, f"{RAM}ID", invoice.invoice_number)
        sub(document, f"{RAM}TypeCode", invoice.document_type_code)
        self._add_date(document, f"{RAM}IssueDateTime", invoice.invoice_date)
        if invoice.notes:
            sub(sub(document, f"{RAM}IncludedNote"), f"{RAM}Content", invoice.notes)

        transaction = sub(root, f"{RSM}SupplyChainTradeTransaction")
        for index, item in enumerate(invoice.line_items, 1):
            self._add_line(transaction, index, item)

        agreement = sub(transaction, f"{RAM}ApplicableHeaderTradeAgreement")
        sub_if(agreement, f"{RAM}BuyerReference", invoice.buyer_reference)
        self._add_party(agreement, f"{RAM}SellerTradeParty", invoice.seller, is_seller=True)
        self._add_party(agreement, f"{RAM}BuyerTradeParty", invoice.buyer, is_seller=False)

        delivery = sub(transaction, f"{RAM}ApplicableHeaderTradeDelivery")
        event = sub(delivery, f"{RAM}ActualDeliverySupplyChainEvent")
        self._add_date(event, f"{RAM}OccurrenceDateTime", invoice.invoice_date)

        self._add_settlement(transaction, invoice, warnings)
        return root

    # ========================================================================
    # Building Blocks
    # ========================================================================

    def _add_date(self, parent: ET.Element, tag: str, value: Optional[str]) -> None:
        formatted = cii_date(value)
        if formatted:
            sub(sub(parent, tag), f"{UDT}DateTimeString", formatted, format="102")

    def _add_line(self, parent: ET.Element, index: int, item: LineItem) -> None:
        line = sub(parent, f"{RAM}IncludedSupplyChainTradeLineItem")
        sub(sub(line, f"{RAM}AssociatedDocumentLineDocument"), f"{RAM}LineID", index)
        sub(sub(line, f"{RAM}SpecifiedTradeProduct"), f"{RAM}Name", item.description or "Item")

        agreement = sub(line, f"{RAM}SpecifiedLineTradeAgreement")
        price = sub(agreement, f"{RAM}NetPriceProductTradePrice")
        sub(price, f"{RAM}ChargeAmount", format_amount(item.unit_price))

        delivery = sub(line, f"{RAM}SpecifiedLineTradeDelivery")
        sub(delivery, f"{RAM}BilledQuantity", format_quantity(item.quantity), unitCode=item.unit_code or DEFAULT_UNIT_CODE)

        settlement = sub(line, f"{RAM}SpecifiedLineTradeSettlement")
        tax = sub(settlement, f"{RAM}ApplicableTradeTax")
        sub(tax, f"{RAM}TypeCode", "VAT")
        sub(tax, f"{RAM}CategoryCode", line_category(item))
        sub(tax, f"{RAM}RateApplicablePercent", format_rate(line_rate(item)))
        summation = sub(settlement, f"{RAM}SpecifiedTradeSettlementLineMonetarySummation")
        sub(summation, f"{RAM}LineTotalAmount", format_amount(item.total_price))

    def _add_address(self, parent: ET.Element, party: Party) -> None:
        address = sub(parent, f"{RAM}PostalTradeAddress")
        sub_if(address, f"{RAM}PostcodeCode", party.postal_code)
        sub_if(address, f"{RAM}LineOne", party.address)
        sub_if(address, f"{RAM}CityName", party.city)
        sub_if(address, f"{RAM}CountryID", party.country_code)

    def _add_party(self, parent: ET.Element, tag: str, party: Party, is_seller: bool) -> None:
        element = sub(parent, tag)
        sub(element, f"{RAM}Name", party.name)

        if is_seller and (party.contact_name or party.phone or party.email):
            contact = sub(element, f"{RAM}DefinedTradeContact")
            sub(contact, f"{RAM}PersonName", party.contact_name or party.name)
            if party.phone:
                sub(sub(contact, f"{RAM}TelephoneUniversalCommunication"), f"{RAM}CompleteNumber", party.phone)
            if party.email:
                sub(sub(contact, f"{RAM}EmailURIUniversalCommunication"), f"{RAM}URIID", party.email)

        self._add_address(element, party)

        if party.electronic_address:
            communication = sub(element, f"{RAM}URIUniversalCommunication")
            sub(
                communication,
                f"{RAM}URIID",
                party.electronic_address,
                schemeID=party.electronic_address_scheme or "EM",
            )

        if party.vat_id:
            sub(sub(element, f"{RAM}SpecifiedTaxRegistration"), f"{RAM}ID", party.vat_id, schemeID="VA")
        if is_seller and party.tax_number:
            sub(sub(element, f"{RAM}SpecifiedTaxRegistration"), f"{RAM}ID", party.tax_number, schemeID="FC")

    def _add_settlement(self, parent: ET.Element, invoice: CanonicalInvoice, warnings: list[str]) -> None:
        totals = invoice.totals
        settlement = sub(parent, f"{RAM}ApplicableHeaderTradeSettlement")
        sub(settlement, f"{RAM}InvoiceCurrencyCode", invoice.currency)

        means = sub(settlement, f"{RAM}SpecifiedTradeSettlementPaymentMeans")
        if invoice.payment.iban:
            sub(means, f"{RAM}TypeCode", PAYMENT_MEANS_SEPA)
            account = sub(means, f"{RAM}PayeePartyCreditorFinancialAccount")
            sub(account, f"{RAM}IBANID", invoice.payment.iban)
            if invoice.payment.bic:
                institution = sub(means, f"{RAM}PayeeSpecifiedCreditorFinancialInstitution")
                sub(institution, f"{RAM}BICID", invoice.payment.bic)
        else:
            sub(means, f"{RAM}TypeCode", PAYMENT_MEANS_UNDEFINED)
            warnings.append("No seller IBAN: payment means 1 (instrument not defined) was used")

        breakdown = totals.tax_breakdown or fallback_breakdown(invoice)
        for group in breakdown:
            tax = sub(settlement, f"{RAM}ApplicableTradeTax")
            sub(tax, f"{RAM}CalculatedAmount", format_amount(group.tax_amount))
            sub(tax, f"{RAM}TypeCode", "VAT")
            if group.tax_category_code == "E":
                sub(tax, f"{RAM}ExemptionReason", "Exempt from VAT")
            sub(tax, f"{RAM}BasisAmount", format_amount(group.taxable_amount))
            sub(tax, f"{RAM}CategoryCode", group.tax_category_code)
            sub(tax, f"{RAM}RateApplicablePercent", format_rate(group.tax_rate))

        if invoice.billing_period_start or invoice.billing_period_end:
            period = sub(settlement, f"{RAM}BillingSpecifiedPeriod")
            self._add_date(period, f"{RAM}StartDateTime", invoice.billing_period_start)
            self._add_date(period, f"{RAM}EndDateTime", invoice.billing_period_end)

        for ac in invoice.allowance_charges:
            self._add_allowance_charge(settlement, ac, breakdown)

        if invoice.payment.payment_terms or invoice.payment.due_date:
            terms = sub(settlement, f"{RAM}SpecifiedTradePaymentTerms")
            sub_if(terms, f"{RAM}Description", invoice.payment.payment_terms)
            self._add_date(terms, f"{RAM}DueDateDateTime", invoice.payment.due_date)

        prepaid = round_money(invoice.payment.prepaid_amount or 0)
        summation = sub(settlement, f"{RAM}SpecifiedTradeSettlementHeaderMonetarySummation")
        sub(summation, f"{RAM}LineTotalAmount", format_amount(totals.subtotal))
        if invoice.allowance_charges:
            sub(summation, f"{RAM}ChargeTotalAmount", format_amount(totals.charge_total))
            sub(summation, f"{RAM}AllowanceTotalAmount", format_amount(totals.allowance_total))
        sub(summation, f"{RAM}TaxBasisTotalAmount", format_amount(totals.tax_basis_total))
        sub(summation, f"{RAM}TaxTotalAmount", format_amount(totals.tax_amount), currencyID=invoice.currency)
        sub(summation, f"{RAM}GrandTotalAmount", format_amount(totals.total_amount))
        if prepaid:
            sub(summation, f"{RAM}TotalPrepaidAmount", format_amount(prepaid))
        sub(summation, f"{RAM}DuePayableAmount", format_amount(totals.total_amount - prepaid))

        if invoice.preceding_invoice_reference:
            referenced = sub(settlement, f"{RAM}InvoiceReferencedDocument")
            sub(referenced, f"{RAM}IssuerAssignedID", invoice.preceding_invoice_reference)

    def _add_allowance_charge(
        self,
        parent: ET.Element,
        ac: AllowanceCharge,
        breakdown: list[TaxBreakdown],
    ) -> None:
        if ac.tax_rate is not None or ac.tax_category_code:
            rate = ac.tax_rate if ac.tax_rate is not None else ZERO
            category = ac.tax_category_code or derive_tax_category_code(rate)
        else:
            # Unassigned amounts were spread over the groups; report the largest
            dominant = max(breakdown, key=lambda g: g.taxable_amount)
            rate, category = dominant.tax_rate, dominant.tax_category_code

        element = sub(parent, f"{RAM}SpecifiedTradeAllowanceCharge")
        sub(sub(element, f"{RAM}ChargeIndicator"), f"{UDT}Indicator", "true" if ac.charge_indicator else "false")
        sub(element, f"{RAM}ActualAmount", format_amount(ac.amount))
        sub_if(element, f"{RAM}ReasonCode", ac.reason_code)
        sub_if(element, f"{RAM}Reason", ac.reason)
        tax = sub(element, f"{RAM}CategoryTradeTax")
        sub(tax, f"{RAM}TypeCode", "VAT")
        sub(tax, f"{RAM}CategoryCode", category)
        sub(tax, f"{RAM}RateApplicablePercent", format_rate(rate))


class XRechnungCiiGenerator(CiiGenerator):
    """XRechnung 3.0 in CII syntax for German public-sector recipients."""

    format_id = "xrechnung-cii"
    format_name = "XRechnung 3.0 (CII)"
    version = "1.0.0"
    spec_version = "3.0"
    spec_date = "2024-02-01"