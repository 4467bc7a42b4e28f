"""Stock number and VIN-like code generation.

Both identifiers are deterministic functions of order attributes plus a
monotonic counter drawn from the repository. Counter draws are the only
source of uniqueness, so they must be atomic read-and-increment operations.

Stock number (9 digits)::

    [series digits][dealer digits][stock sequence]
         3               3              3

VIN-like code (17 chars, no real check digit)::

    1FT [series+drive+cab] X [year] [plant] [serial]
     3          5          1   1      1       6
"""

import re
from datetime import datetime
from typing import Any, Optional, Protocol

from upfit_orders.core.logging import get_logger
from upfit_orders.services.orders.eta_policy import to_utc, utcnow

logger = get_logger(__name__)

STOCK_SEQUENCE = "stock_sequence"
VIN_SEQUENCE = "vin_sequence"
DEFAULT_STOCK_SEQUENCE_START = 100
DEFAULT_VIN_SEQUENCE_START = 100000

WORLD_MANUFACTURER_ID = "1FT"
CHECK_DIGIT_PLACEHOLDER = "X"
DEFAULT_PLANT_CODE = "F"
DEFAULT_YEAR_CODE = "S"

MODEL_YEAR_CODES = {
    2010: "A", 2011: "B", 2012: "C", 2013: "D", 2014: "E",
    2015: "F", 2016: "G", 2017: "H", 2018: "J", 2019: "K",
    2020: "L", 2021: "M", 2022: "N", 2023: "P", 2024: "R",
    2025: "S", 2026: "T", 2027: "V", 2028: "W", 2029: "X",
    2030: "Y", 2031: "1", 2032: "2", 2033: "3", 2034: "4",
    2035: "5",
}

FLEET_BUYER_COMPANIES = (
    "Acme Logistics",
    "Northstar Utilities",
    "Pioneer Construction",
    "Summit Energy",
    "Atlas Freight Co",
    "Riverside Municipal Services",
    "Global Services Group",
    "Vertex Communications",
    "Crescent Building Corp",
    "Evergreen Landscaping",
    "Redwood Telecom",
    "BlueSky Maintenance",
    "Titan Industrial",
    "Frontier Field Services",
    "Liberty Waste Management",
    "Keystone Infrastructure",
    "Sequoia Electric",
    "Harbor City Transit",
    "Cobalt Mining & Materials",
    "Prairie Agricultural Supply",
)
FLEET_BUYER_SUFFIXES = ("LLC", "Inc", "Corp", "Ltd", "PLC")

_NON_DIGITS = re.compile(r"\D")
_NON_LETTERS = re.compile(r"[^A-Za-z]")
_FOUR_BY_FOUR = re.compile(r"4x4", re.IGNORECASE)
_CREW_CAB = re.compile(r"crew", re.IGNORECASE)


class CounterSource(Protocol):
    """Anything able to hand out monotonic counter values atomically."""

    async def next_counter(self, name: str, start: int) -> int:
        ...


def extract_digits(value: Any) -> str:
    """Keep only the decimal digits of ``value``'s string form."""
    return _NON_DIGITS.sub("", str(value or ""))


def _last_three(digits: str) -> str:
    return digits[-3:].rjust(3, "0")


def year_to_vin_code(year: int) -> str:
    """Model-year character for 2010-2035, 'S' for anything else."""
    return MODEL_YEAR_CODES.get(year, DEFAULT_YEAR_CODE)


def plant_code_for_dealer(dealer_code: Optional[str]) -> str:
    """Last letter of the dealer code, upper-cased; 'F' when there is none."""
    letters = _NON_LETTERS.sub("", str(dealer_code or ""))
    return letters[-1:].upper() or DEFAULT_PLANT_CODE


def stock_number_from_parts(series: Any, dealer_code: Any, sequence: int) -> str:
    """Compose a 9-digit stock number."""
    return (
        _last_three(extract_digits(series))
        + _last_three(extract_digits(dealer_code))
        + _last_three(str(sequence))
    )


def vin_from_parts(
    series: Any,
    drivetrain: Any,
    cab: Any,
    created_year: int,
    dealer_code: Any,
    serial: int,
) -> str:
    """Compose a 17-character VIN-like code."""
    series_digits = extract_digits(series).rjust(3, "0")[-3:]
    drive_code = "4" if _FOUR_BY_FOUR.search(str(drivetrain or "")) else "2"
    cab_code = "C" if _CREW_CAB.search(str(cab or "")) else "R"
    descriptor = (series_digits + drive_code + cab_code)[:5].ljust(5, "X")
    serial_digits = str(serial)[-6:].rjust(6, "0")
    return (
        WORLD_MANUFACTURER_ID
        + descriptor
        + CHECK_DIGIT_PLACEHOLDER
        + year_to_vin_code(created_year)
        + plant_code_for_dealer(dealer_code)
        + serial_digits
    )


def generate_fleet_buyer_name(index: int = 0) -> str:
    """Deterministic, plausible corporate fleet buyer name."""
    company = FLEET_BUYER_COMPANIES[index % len(FLEET_BUYER_COMPANIES)]
    suffix = FLEET_BUYER_SUFFIXES[index % len(FLEET_BUYER_SUFFIXES)]
    return f"{company} {suffix}"


class IdentifierGenerator:
    """Draws counter values and turns orders into stock numbers and VINs.

    Attributes:
        counters: Atomic counter source, normally the order repository
        stock_start: First stock-sequence value
        vin_start: First VIN-serial value
    """

    def __init__(
        self,
        counters: CounterSource,
        stock_start: int = DEFAULT_STOCK_SEQUENCE_START,
        vin_start: int = DEFAULT_VIN_SEQUENCE_START,
    ):
        self.counters = counters
        self.stock_start = stock_start
        self.vin_start = vin_start

    async def next_stock_number(self, dealer_code: str, build: Optional[dict]) -> str:
        chassis = (build or {}).get("chassis") or {}
        sequence = await self.counters.next_counter(STOCK_SEQUENCE, self.stock_start)
        stock_number = stock_number_from_parts(chassis.get("series"), dealer_code, sequence)

        logger.debug(
            "Stock number generated",
            stock_number=stock_number,
            sequence=sequence,
        )
        return stock_number

    async def next_vin(
        self,
        dealer_code: str,
        build: Optional[dict],
        created_at: Optional[datetime],
    ) -> str:
        chassis = (build or {}).get("chassis") or {}
        created = to_utc(created_at) or utcnow()
        serial = await self.counters.next_counter(VIN_SEQUENCE, self.vin_start)
        vin = vin_from_parts(
            series=chassis.get("series"),
            drivetrain=chassis.get("drivetrain"),
            cab=chassis.get("cab"),
            created_year=created.year,
            dealer_code=dealer_code,
            serial=serial,
        )

        logger.debug("VIN generated", vin=vin, serial=serial)
        return vin
