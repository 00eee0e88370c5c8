"""Shared test fixtures for the receipt OCR test suite."""

import io
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0)

CBE_RECEIPT = """Commercial Bank of Ethiopia
VAT Invoice / Customer Receipt
Payer   ABEBE KEBEDE
Payer Account   1****1234
Receiver   SAMUEL TADESSE
Receiver Account   1****5678
Payment Date & Time   2/12/2026, 3:31:00 PM
Reference No. (VAT Invoice No)   FT26043ABCD1
Reason / Type of service   Rent payment done via Mobile
Transferred Amount   4,500.00 ETB
Commission or Service Charge   10.00 ETB
Total amount debited from customers account   4,515.00 ETB
"""

TELEBIRR_MESSY = """telebirr
Transaction details
(05-01-2026 19:46:30
Transaction To: Ethio Fuel Station
Amount 4581.00 Birr
Status: Completed
"""

FUEL_RECEIPT = "Fuel Payment\nAmount: 4581.00 ETB\nDate: 2026-01-05T19:46:30"

RETAIL_RECEIPT = """SHOPRITE SUPERMARKET
123 Main Street
Date: 15/03/2025
Milk 2.50
Bread 3.25
TOTAL: $45.67
Paid via Card
Receipt No: RC99887766
"""


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def sample_png_bytes(sample_color_image: np.ndarray) -> bytes:
    """Encode the synthetic color image as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(sample_color_image).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def fixed_now() -> datetime:
    """The instant returned by the fixed clock."""
    return FIXED_NOW


@pytest.fixture
def fixed_clock():
    """A clock that always returns the same instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def cbe_receipt() -> str:
    """OCR text of a Commercial Bank of Ethiopia transfer slip."""
    return CBE_RECEIPT


@pytest.fixture
def telebirr_receipt() -> str:
    """Messy OCR text of a Telebirr confirmation."""
    return TELEBIRR_MESSY


@pytest.fixture
def fuel_receipt() -> str:
    """Minimal fuel payment text."""
    return FUEL_RECEIPT


@pytest.fixture
def retail_receipt() -> str:
    """OCR text of a supermarket receipt."""
    return RETAIL_RECEIPT
