"""
Unit tests for entodm error types.

Tests cover:
- Error codes and details
- Exception hierarchy
"""

import pytest

from entodm.errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    InvalidIdentifierError,
    NotInitializedError,
    OdmError,
    RegistryFrozenError,
    ValidationError,
)


class TestErrorCodes:
    """Tests for error codes and context."""

    def test_base_error_defaults(self):
        """OdmError has a generic code and empty details."""
        err = OdmError("boom")
        assert err.message == "boom"
        assert err.code == "ODM_ERROR"
        assert err.details == {}
        assert str(err) == "boom"

    def test_not_initialized_message(self):
        """NotInitializedError tells the caller to call init()."""
        err = NotInitializedError()
        assert err.code == "NOT_INITIALIZED"
        assert "init()" in err.message

    def test_duplicate_registration_details(self):
        err = DuplicateRegistrationError("dup", type_name="Post")
        assert err.code == "DUPLICATE_REGISTRATION"
        assert err.type_name == "Post"
        assert err.details == {"type_name": "Post"}

    def test_invalid_identifier_keeps_value(self):
        """InvalidIdentifierError records the offending value and field."""
        err = InvalidIdentifierError("nope", field_name="author_id")
        assert err.value == "nope"
        assert err.field_name == "author_id"
        assert err.code == "INVALID_IDENTIFIER"
        assert "'nope'" in err.message


class TestErrorHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "err",
        [
            ConfigurationError("x"),
            NotInitializedError(),
            RegistryFrozenError("x"),
            DuplicateRegistrationError("x"),
            ValidationError("x"),
            InvalidIdentifierError("x"),
        ],
    )
    def test_all_inherit_from_base(self, err):
        assert isinstance(err, OdmError)

    def test_configuration_family(self):
        """Setup errors are ConfigurationErrors."""
        assert issubclass(NotInitializedError, ConfigurationError)
        assert issubclass(RegistryFrozenError, ConfigurationError)
        assert issubclass(DuplicateRegistrationError, ConfigurationError)

    def test_invalid_identifier_is_validation_error(self):
        assert issubclass(InvalidIdentifierError, ValidationError)
