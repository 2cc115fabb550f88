"""
Validation engine for canonical invoices.

This module runs the business rules of a profile against an invoice and
returns the violations as data, split into errors and warnings.
"""

from typing import Optional

from .config import DEFAULT_FORMAT, RuleCategory, Severity, logger
from .exceptions import UnknownFormatError
from .rules import PROFILE_NAMES, PROFILE_RULES, ValidationRule
from .schemas import CanonicalInvoice, RuleViolation, ValidationResult


class ProfileValidator:
    """
    Validates invoices against the rule list of one profile.

    Every rule runs on every call; a rule never short-circuits another.
    """

    def __init__(self, profile_id: str, profile_name: str, rules: list[ValidationRule]):
        self.profile_id = profile_id
        self.profile_name = profile_name
        self.rules = rules

    def validate(self, invoice: CanonicalInvoice) -> ValidationResult:
        """
        Validate a single invoice against all rules of the profile.

        Args:
            invoice: The CanonicalInvoice to validate

        Returns:
            ValidationResult with all errors and warnings found
        """
        errors: list[RuleViolation] = []
        warnings: list[RuleViolation] = []

        for rule in self.rules:
            try:
                found = rule.check(invoice)
            except Exception as e:
                logger.error(f"Error running rule {rule.rule_id} on invoice {invoice.invoice_number}: {e}")
                errors.append(RuleViolation(
                    rule_id="RULE-ERROR",
                    message=f"Rule {rule.rule_id} could not be evaluated: {e}",
                    location="invoice",
                ))
                continue

            if found is None:
                continue
            if isinstance(found, RuleViolation):
                found = [found]

            if rule.severity == Severity.WARNING:
                warnings.extend(found)
            else:
                errors.extend(found)

        return ValidationResult(
            profile=self.profile_id,
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def get_rule_descriptions(self) -> dict[str, str]:
        return {rule.rule_id: rule.description for rule in self.rules}

    def get_rules_by_category(self, category: RuleCategory) -> list[ValidationRule]:
        return [rule for rule in self.rules if rule.category == category]


_validators: dict[str, ProfileValidator] = {}


def get_profile_validator(profile_id: str) -> ProfileValidator:
    """
    Return the shared validator for a profile.

    Raises:
        UnknownFormatError: If profile_id has no rule set
    """
    if profile_id not in PROFILE_RULES:
        raise UnknownFormatError(profile_id)
    if profile_id not in _validators:
        _validators[profile_id] = ProfileValidator(
            profile_id, PROFILE_NAMES[profile_id], PROFILE_RULES[profile_id]
        )
    return _validators[profile_id]


def validate_invoice(invoice: CanonicalInvoice, profile_id: Optional[str] = None) -> ValidationResult:
    """
    Validate an invoice against a profile.

    Args:
        invoice: The CanonicalInvoice to validate
        profile_id: Profile to use (defaults to the invoice's output format)

    Returns:
        ValidationResult for that profile
    """
    profile = profile_id or invoice.output_format or DEFAULT_FORMAT
    return get_profile_validator(profile).validate(invoice)


def get_available_profiles() -> list[str]:
    return list(PROFILE_RULES)


def get_rule_descriptions(profile_id: str) -> dict[str, str]:
    """
    Get a mapping of rule ids to descriptions for a profile.

    Returns:
        Dict mapping rule id to description
    """
    return get_profile_validator(profile_id).get_rule_descriptions()


def get_rules_by_category(profile_id: str, category: RuleCategory) -> list[ValidationRule]:
    """
    Get all rules of a profile in a specific category.

    Args:
        profile_id: Profile to look up
        category: The category to filter by

    Returns:
        List of rules in that category
    """
    return get_profile_validator(profile_id).get_rules_by_category(category)
