"""Sample host object: a user registration form.

Each property setter stores the value and re-validates that property, the
way a view model drives its validator. ``submit`` validates everything.
"""

import re
from collections.abc import Awaitable, Callable
from typing import Any

from validus.config import ValidusConfig
from validus.engine import ValidationEngine
from validus.models import RuleResult, ValidationResult

EMAIL_PATTERN = re.compile(r"^[_a-z0-9-]+(\.[_a-z0-9-]+)*@[a-z0-9-]+(\.[a-z0-9-]+)*(\.[a-z]{2,4})$")

FIELDS = ("first_name", "last_name", "email", "password", "password_confirmation")


class RegistrationForm:
    """Registration form with required names, email and a confirmed password."""

    def __init__(self, email_checker: Callable[[str], Awaitable[bool]] | None = None,
                 config: ValidusConfig | None = None):
        """
        Args:
            email_checker: Optional coroutine function answering whether an
                email address is still available (e.g. a network lookup)
            config: Engine configuration
        """
        self.validator = ValidationEngine(config)
        self._values: dict[str, str | None] = dict.fromkeys(FIELDS)
        self._email_checker = email_checker
        self._configure_validation_rules()

    @classmethod
    def from_values(cls, values: dict[str, Any], **kwargs) -> "RegistrationForm":
        """Build a form and assign values without triggering validation."""
        unknown = set(values) - set(FIELDS)
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")
        form = cls(**kwargs)
        for name, value in values.items():
            form._values[name] = None if value is None else str(value)
        return form

    def _set(self, name: str, value: str | None) -> None:
        self._values[name] = value
        self.validator.validate(name)

    @property
    def first_name(self) -> str | None:
        return self._values["first_name"]

    @first_name.setter
    def first_name(self, value: str | None) -> None:
        self._set("first_name", value)

    @property
    def last_name(self) -> str | None:
        return self._values["last_name"]

    @last_name.setter
    def last_name(self, value: str | None) -> None:
        self._set("last_name", value)

    @property
    def email(self) -> str | None:
        return self._values["email"]

    @email.setter
    def email(self, value: str | None) -> None:
        self._set("email", value)

    @property
    def password(self) -> str | None:
        return self._values["password"]

    @password.setter
    def password(self, value: str | None) -> None:
        self._set("password", value)

    @property
    def password_confirmation(self) -> str | None:
        return self._values["password_confirmation"]

    @password_confirmation.setter
    def password_confirmation(self, value: str | None) -> None:
        self._set("password_confirmation", value)

    def submit(self) -> ValidationResult:
        return self.validator.validate_all()

    async def submit_async(self) -> ValidationResult:
        return await self.validator.validate_all_async()

    def _configure_validation_rules(self) -> None:
        validator = self.validator

        validator.add_required_rule("first_name", lambda: self.first_name, "First Name is required")
        validator.add_required_rule("last_name", lambda: self.last_name, "Last Name is required")
        validator.add_required_rule("email", lambda: self.email, "Email is required")
        validator.add_rule("email", self._check_email_format, name="email_format")
        if self._email_checker is not None:
            validator.add_async_rule("email", self._check_email_available, name="email_available")
        validator.add_rule("password", self._check_password_strength, name="password_strength")
        validator.add_rule(
            ["password", "password_confirmation"],
            self._check_passwords_match,
            name="password_confirmation",
        )

    def _check_email_format(self) -> RuleResult:
        if not self.email:
            return RuleResult.valid()
        return RuleResult.assert_that(
            EMAIL_PATTERN.match(self.email) is not None,
            "Email must be a valid email address",
        )

    async def _check_email_available(self) -> RuleResult:
        email = self.email
        if not email or EMAIL_PATTERN.match(email) is None:
            return RuleResult.valid()
        available = await self._email_checker(email)
        return RuleResult.assert_that(available, f"Email {email} is already registered")

    def _check_password_strength(self) -> RuleResult:
        password = self.password
        result = RuleResult.assert_that(bool(password), "Password is required")
        if not result:
            return result

        # Character-wise: digits count against "all lower case" and vice versa
        single_class = (
            all(c.islower() for c in password)
            or all(c.isupper() for c in password)
            or all(c.isdigit() for c in password)
        )
        return RuleResult.combine_all([
            RuleResult.assert_that(len(password) >= 6, "Password must contain at least 6 characters"),
            RuleResult.assert_that(not single_class, "Password must contain both lower case and upper case letters"),
            RuleResult.assert_that(any(c.isdigit() for c in password), "Password must contain at least one digit"),
        ])

    def _check_passwords_match(self) -> RuleResult:
        if not self.password:
            return RuleResult.valid()
        if not self.password_confirmation:
            return RuleResult.invalid("Please confirm password")
        return RuleResult.assert_that(self.password == self.password_confirmation, "Passwords do not match")
