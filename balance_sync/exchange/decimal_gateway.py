# ============================================================================
# Balance Sync v1.0.0
# Decimal Gateway - Exchange Amount Conversion
# ============================================================================
#
# Purpose: Ensures all exchange amounts use decimal.Decimal with ROUND_HALF_EVEN
#
# MANDATE:
#   - All Poloniex numeric strings MUST pass through this gateway
#   - Float contamination is FORBIDDEN in balance arithmetic
#   - Crypto amounts use 8 decimal places (0.00000001 - satoshi)
#
# Error Codes:
#   - PLNX-DEC-001: Decimal conversion failed
#
# ============================================================================

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, Union, Any
import logging

logger = logging.getLogger(__name__)


class DecimalGateway:
    """
    Central conversion layer ensuring balances and amounts use
    decimal.Decimal with Banker's Rounding (ROUND_HALF_EVEN).

    Example Usage:
        gateway = DecimalGateway()
        available = gateway.to_crypto("0.00123456")
    """

    CRYPTO_PRECISION = Decimal('0.00000001')  # 8 decimal places (satoshi)

    def to_decimal(
        self,
        value: Union[str, int, float, Decimal, None],
        precision: Optional[Decimal] = None,
        correlation_id: Optional[str] = None
    ) -> Decimal:
        """
        Convert any numeric value to Decimal with ROUND_HALF_EVEN.

        Args:
            value: Numeric value to convert (str, int, float, Decimal, None)
            precision: Decimal precision (default: CRYPTO_PRECISION)
            correlation_id: Audit trail identifier

        Returns:
            Decimal quantized to the requested precision

        Raises:
            ValueError: If value cannot be converted (PLNX-DEC-001)
        """
        if precision is None:
            precision = self.CRYPTO_PRECISION

        if value is None:
            return Decimal('0').quantize(precision, rounding=ROUND_HALF_EVEN)

        if isinstance(value, bool):
            raise ValueError(f"PLNX-DEC-001: Cannot convert '{value}' to Decimal")

        try:
            # Always convert via string to avoid float precision loss
            decimal_value = Decimal(str(value).strip())
            if not decimal_value.is_finite():
                raise ValueError("non-finite value")
            return decimal_value.quantize(precision, rounding=ROUND_HALF_EVEN)

        except (InvalidOperation, ValueError, TypeError) as e:
            logger.error(
                f"[PLNX-DEC-001] Decimal conversion failed | "
                f"value={value!r} | type={type(value).__name__} | "
                f"correlation_id={correlation_id} | error={e}"
            )
            raise ValueError(
                f"PLNX-DEC-001: Cannot convert '{value}' to Decimal"
            ) from e

    def to_crypto(
        self,
        value: Union[str, int, float, Decimal, None],
        correlation_id: Optional[str] = None
    ) -> Decimal:
        """Convert value to crypto precision (8 decimal places)."""
        return self.to_decimal(value, self.CRYPTO_PRECISION, correlation_id)

    def validate_decimal(
        self,
        value: Any,
        field_name: str,
        correlation_id: Optional[str] = None
    ) -> bool:
        """
        Validate that a value is already a Decimal type.

        Used before repository writes to ensure type safety.

        Returns:
            True if value is Decimal, False otherwise
        """
        if not isinstance(value, Decimal):
            logger.error(
                f"[PLNX-DEC-001] Non-Decimal value detected | "
                f"field={field_name} | type={type(value).__name__} | "
                f"correlation_id={correlation_id}"
            )
            return False
        return True

    def format_amount(self, value: Decimal, currency: str) -> str:
        """
        Format an amount for display, trimming trailing zeros.

        Returns:
            String like "1.5 BTC"
        """
        normalized = value.normalize()
        if normalized == normalized.to_integral():
            text = f"{normalized.to_integral():f}"
        else:
            text = f"{normalized:f}"
        return f"{text} {currency}"


# ============================================================================
# Module-level convenience functions
# ============================================================================

_gateway = DecimalGateway()


def format_amount(value: Decimal, currency: str) -> str:
    """Module-level convenience function for display formatting."""
    return _gateway.format_amount(value, currency)
