"""
GeoScriptHub: Shared Input Validators
=======================================
Static utility methods used across every GeoScriptHub Python tool to
validate common preconditions before processing begins.

All methods raise an appropriate exception from
:mod:`shared.python.exceptions` rather than returning booleans - this
makes ``validate_inputs`` implementations in each tool simple and
readable::

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_file_exists(self.input_path)
            Validators.assert_in_range(self.slope, 0, 30, "slope threshold")
            Validators.assert_positive_int(self.n_trees, "tree count")
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence

# Lazy imports for heavy libraries so tools that do not use them avoid
# the import cost at startup.
#   pyproj → assert_crs_valid

from shared.python.exceptions import (
    ColumnNotFoundError,
    CRSError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks shared across all tools.

    All methods are ``@staticmethod`` - this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing file (or file-like
        dataset directory such as a FileGDB).

        Raises:
            InputValidationError: If *path* does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Assert that the parent directory of *output_path* is writable.

        Creates the parent directory (and any missing parents) if it does
        not yet exist, so authors never have to pre-create output dirs.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Sequence of allowed extensions, each starting with
                        a dot (e.g. ``[".shp", ".geojson", ".gpkg"]``).

        Raises:
            InputValidationError: If the file extension is not in
                *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / projection checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a valid CRS.

        Uses :mod:`pyproj` to attempt parsing.  Accepts EPSG codes
        (``"EPSG:4326"``), PROJ strings, and WKT strings.

        Raises:
            CRSError: If *crs_string* is not recognised by pyproj.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise CRSError(str(crs_string)) from exc

    # ------------------------------------------------------------------
    # Tabular data checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_columns_exist(
        df: object,  # pandas DataFrame - typed loosely to avoid hard dep
        required_columns: Sequence[str],
    ) -> None:
        """Assert that all *required_columns* are present in *df*.

        Raises:
            ColumnNotFoundError: On the first missing column found.
        """
        available = [str(c) for c in df.columns]  # type: ignore[union-attr]
        for col in required_columns:
            if col not in available:
                raise ColumnNotFoundError(col, available)

    @staticmethod
    def assert_binary_labels(values: Sequence[object], column: str) -> None:
        """Assert that every value in *values* is exactly 0 or 1.

        Raises:
            InputValidationError: If any other value (or a missing value)
                is present.
        """
        bad = sorted({repr(v) for v in values if v not in (0, 1)})
        if bad:
            shown = ", ".join(bad[:5])
            raise InputValidationError(
                f"Label column '{column}' must contain only 0 and 1; "
                f"found {shown}{' ...' if len(bad) > 5 else ''}."
            )

    # ------------------------------------------------------------------
    # Numeric parameter checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_in_range(
        value: float,
        minimum: float,
        maximum: float,
        label: str,
    ) -> None:
        """Assert that ``minimum <= value <= maximum``.

        Raises:
            InputValidationError: If *value* falls outside the range.
        """
        if not (minimum <= value <= maximum):
            raise InputValidationError(
                f"{label} must be between {minimum} and {maximum}, got {value!r}."
            )

    @staticmethod
    def assert_positive_int(value: object, label: str) -> None:
        """Assert that *value* is a strictly positive integer.

        Booleans are rejected even though they subclass ``int``.

        Raises:
            InputValidationError: If *value* is not a positive integer.
        """
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InputValidationError(
                f"{label} must be a positive integer, got {value!r}."
            )

    # ------------------------------------------------------------------
    # Date checks
    # ------------------------------------------------------------------

    @staticmethod
    def parse_iso_date(raw: str, label: str) -> date:
        """Parse an ISO 8601 calendar date (``YYYY-MM-DD``).

        Raises:
            InputValidationError: If *raw* is not a valid date.
        """
        try:
            return date.fromisoformat(str(raw).strip())
        except ValueError as exc:
            raise InputValidationError(
                f"{label} {raw!r} is not a valid date. Use YYYY-MM-DD."
            ) from exc

    @staticmethod
    def assert_date_order(start: date, end: date) -> None:
        """Assert that *start* is strictly before *end*.

        Raises:
            InputValidationError: If ``start >= end``.
        """
        if start >= end:
            raise InputValidationError(
                f"Start date {start.isoformat()} must be before end date "
                f"{end.isoformat()}."
            )
