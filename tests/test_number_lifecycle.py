import json

import pytest

from models.errors import (
    AuthenticationError,
    MismatchError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from leasing.lifecycle import release_identifier
from tests.provider_fakes import FakeProvider, make_context


def test_lease_fills_up_to_max_from_zero():
    provider = FakeProvider()
    provider.to_lease = ["+61411111111", "+61422222222"]
    ctx = make_context(provider, MAX_LEASED_NUMBER_COUNT=2)

    result = ctx.numbers.lease()

    assert result.leased_count == 2
    assert result.max_count == 2
    assert [vn.number for vn in result.virtual_numbers] == ["+61411111111", "+61422222222"]
    assert result.message == "Successfully leased 2 new virtual numbers"
    assert len(provider.calls("POST", "/messaging/v3/virtual-numbers")) == 2


@pytest.mark.parametrize("max_count", [1, 2, 3])
def test_lease_leases_exactly_the_shortfall(max_count):
    provider = FakeProvider()
    provider.to_lease = [f"+6140000000{i}" for i in range(max_count)]
    ctx = make_context(provider, MAX_LEASED_NUMBER_COUNT=max_count)

    result = ctx.numbers.lease()

    assert result.leased_count == max_count
    assert len(provider.calls("POST", "/messaging/v3/virtual-numbers")) == max_count


def test_lease_is_a_noop_at_cap():
    provider = FakeProvider(numbers=["+61412345678"])
    ctx = make_context(provider)

    result = ctx.numbers.lease()

    assert result.message.startswith("Already have 1 virtual numbers (max: 1)")
    assert [vn.number for vn in result.virtual_numbers] == ["+61412345678"]
    assert result.leased_count == 1
    assert provider.calls("POST", "/messaging/v3/virtual-numbers") == []


def test_lease_tops_up_existing_numbers():
    provider = FakeProvider(numbers=["+61400000001"])
    provider.to_lease = ["+61400000002"]
    ctx = make_context(provider, MAX_LEASED_NUMBER_COUNT=2)

    result = ctx.numbers.lease()

    assert [vn.number for vn in result.virtual_numbers] == ["+61400000001", "+61400000002"]
    assert result.message == "Successfully leased 1 new virtual numbers"


def test_lease_failures_are_skipped_not_raised():
    provider = FakeProvider()
    provider.fail["POST /virtual-numbers"] = 400
    ctx = make_context(provider, MAX_LEASED_NUMBER_COUNT=3)

    result = ctx.numbers.lease()

    assert result.leased_count == 0
    assert result.max_count == 3
    # every attempt is still made
    assert len(provider.calls("POST", "/messaging/v3/virtual-numbers")) == 3


def test_lease_reports_partial_success():
    provider = FakeProvider()
    provider.to_lease = ["+61411111111", "+61433333333"]
    provider.lease_failures = [None, 500, None]
    ctx = make_context(provider, MAX_LEASED_NUMBER_COUNT=3)

    result = ctx.numbers.lease()

    assert result.leased_count == 2
    assert result.max_count == 3
    assert [vn.number for vn in result.virtual_numbers] == ["+61411111111", "+61433333333"]
    assert result.message == "Successfully leased 2 new virtual numbers"
    assert len(provider.calls("POST", "/messaging/v3/virtual-numbers")) == 3


def test_lease_fails_when_existing_count_is_unknown():
    provider = FakeProvider()
    provider.fail["GET /virtual-numbers"] = 503
    ctx = make_context(provider)

    with pytest.raises(ProviderError) as ei:
        ctx.numbers.lease()
    assert ei.value.status_code == 503
    assert ei.value.message == "Failed to lease numbers"
    assert provider.calls("POST", "/messaging/v3/virtual-numbers") == []


def test_release_deletes_live_number():
    provider = FakeProvider(numbers=["+61412345678"])
    ctx = make_context(provider)

    msg = ctx.numbers.release(json.dumps({"number": "+61412345678"}))

    assert msg == "Number +61412345678 released successfully"
    assert provider.numbers == []
    deletes = provider.calls("DELETE", "/messaging/v3/virtual-numbers/")
    assert len(deletes) == 1
    assert b"%2B61412345678" in deletes[0].url.raw_path


def test_release_accepts_alternate_field_names():
    for key in ("virtualNumber", "phoneNumber"):
        provider = FakeProvider(numbers=["+61412345678"])
        ctx = make_context(provider)
        assert "released successfully" in ctx.numbers.release(json.dumps({key: "+61412345678"}))


def test_release_provider_404_counts_as_released():
    provider = FakeProvider(numbers=["+61412345678"])
    provider.fail["DELETE /virtual-numbers/"] = 404
    ctx = make_context(provider)

    msg = ctx.numbers.release(json.dumps({"virtualNumber": "+61412345678"}))

    assert "already released" in msg


def test_release_other_provider_failure_is_reported():
    provider = FakeProvider(numbers=["+61412345678"])
    provider.fail["DELETE /virtual-numbers/"] = 500
    ctx = make_context(provider)

    with pytest.raises(ProviderError) as ei:
        ctx.numbers.release(json.dumps({"number": "+61412345678"}))
    assert ei.value.status_code == 500
    assert ei.value.message == "Failed to release number"


def test_release_unknown_number_with_live_numbers_is_mismatch():
    provider = FakeProvider(numbers=["+61412345678"])
    ctx = make_context(provider)

    with pytest.raises(MismatchError) as ei:
        ctx.numbers.release(json.dumps({"number": "+61999999999"}))
    assert ei.value.status_code == 400
    assert provider.calls("DELETE", "/messaging/v3/virtual-numbers/") == []


def test_release_with_nothing_leased_is_not_found():
    ctx = make_context(FakeProvider())

    with pytest.raises(NotFoundError) as ei:
        ctx.numbers.release(json.dumps({"number": "+61412345678"}))
    assert ei.value.status_code == 404


def test_release_without_body_is_not_found():
    ctx = make_context(FakeProvider())

    with pytest.raises(NotFoundError) as ei:
        ctx.numbers.release(None)
    assert ei.value.message == "No active numbers found to release for this session"

    with pytest.raises(NotFoundError):
        make_context(FakeProvider(numbers=["+61412345678"])).numbers.release("")


def test_release_identifier_validation():
    assert release_identifier(None) is None
    assert release_identifier('{"number": "+1", "phoneNumber": "+2"}') == "+1"
    assert release_identifier('{"phoneNumber": "+2", "virtualNumber": "+3"}') == "+3"
    with pytest.raises(ValidationError, match="Invalid JSON"):
        release_identifier("invalid json")
    with pytest.raises(ValidationError, match="Missing virtual number"):
        release_identifier("{}")
    with pytest.raises(ValidationError, match="Missing virtual number"):
        release_identifier("[1, 2]")


def test_get_current_lists_live_numbers():
    ctx = make_context(FakeProvider(numbers=["+61412345678", "+61412345679"]))
    assert [vn.number for vn in ctx.numbers.get_current()] == ["+61412345678", "+61412345679"]


def test_get_current_empty_is_not_found():
    with pytest.raises(NotFoundError, match="No active numbers leased"):
        make_context(FakeProvider()).numbers.get_current()


def test_get_current_provider_failure_is_500():
    provider = FakeProvider(numbers=["+61412345678"])
    provider.fail["GET /virtual-numbers"] = 502
    with pytest.raises(ProviderError) as ei:
        make_context(provider).numbers.get_current()
    assert ei.value.status_code == 500
    assert "Failed to check for active numbers" in ei.value.message


def test_get_all_degrades_to_empty():
    provider = FakeProvider(numbers=["+61412345678"])
    provider.fail["GET /virtual-numbers"] = 500
    assert make_context(provider).numbers.get_all() == []


def test_get_all_degrades_on_auth_failure():
    provider = FakeProvider(numbers=["+61412345678"])
    provider.fail["POST /v2/oauth/token"] = 401
    assert make_context(provider).numbers.get_all() == []


def test_get_all_keeps_expiry_dates():
    numbers = make_context(FakeProvider(numbers=["+61412345678"])).numbers.get_all()
    assert numbers[0].expiry_date == "2030-01-01"
    assert numbers[0].to_payload(include_msisdn=True)["msisdn"] == "+61412345678"


def test_auth_failure_on_lease_is_not_swallowed():
    provider = FakeProvider()
    provider.fail["POST /v2/oauth/token"] = 401
    with pytest.raises(AuthenticationError):
        make_context(provider).numbers.lease()
