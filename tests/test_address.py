# AutoBlockIP - Address validation tests
import pytest

from autoblockip.detector.address import is_valid_ipv4, require_ipv4
from autoblockip.errors import ValidationError


@pytest.mark.parametrize("value", ["1.2.3.4", "0.0.0.0", "255.255.255.255", "10.0.0.1", "192.168.001.010"])
def test_valid_addresses(value):
    assert is_valid_ipv4(value) is True


@pytest.mark.parametrize("value", [
    "",
    "   ",
    None,
    "1.2.3",
    "1.2.3.4.5",
    "1.2.3.256",
    "1.2.3.-1",
    "1.2.3.+4",
    "a.b.c.d",
    "1..3.4",
    "1.2.3.4 ",
    "::1",
    "-",
    "1.2.3.4/32",
    "1.2.3.²",
])
def test_invalid_addresses(value):
    assert is_valid_ipv4(value) is False


def test_require_ipv4():
    assert require_ipv4("10.0.0.1") == "10.0.0.1"
    with pytest.raises(ValidationError):
        require_ipv4("10.0.0")
