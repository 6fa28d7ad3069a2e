"""
Standardized API response handler module.
Provides consistent response envelopes across all endpoints.
"""

from typing import Any, Dict, List
from datetime import datetime, timezone


def _metadata(status_code: int) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status_code": status_code
    }


class ResponseHandler:
    """Utility class for generating standardized responses."""

    @staticmethod
    def success(
        data: Any = None,
        status_code: int = 200
    ) -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            status_code: HTTP status code

        Returns:
            Standardized success response dictionary
        """
        return {
            "success": True,
            "data": data,
            "metadata": _metadata(status_code)
        }

    @staticmethod
    def list_response(
        data: List[Any],
        status_code: int = 200
    ) -> Dict[str, Any]:
        """
        Create an (unpaginated) list response.

        Args:
            data: List of records
            status_code: HTTP status code
        """
        return {
            "success": True,
            "data": data,
            "count": len(data),
            "metadata": _metadata(status_code)
        }
