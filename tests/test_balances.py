import pytest

from auth.monzo_oauth2 import OAuthExchange
from auth.token_manager import TokenManager
from monzo_pots.balances import BalanceReporter, PotBalanceView, ReportMode
from monzo_pots.http import UpstreamRequestError
from tests.helpers import FakeMonzo, RecordingRefresh, make_credential, pot, pots_payload


async def _token_manager(store, refresh: RecordingRefresh) -> TokenManager:
    await store.save_credential(make_credential("access-1", "refresh-1"))
    exchange = OAuthExchange(
        client_id="client-id",
        client_secret="client-secret",
        store=store,
        refresh_token_fn=refresh,
    )
    return TokenManager(store, exchange)


def _two_pots() -> dict:
    return pots_payload(
        pot("pot_A", "Holiday", 12345),
        pot("pot_B", "Rainy day", 500),
    )


def test_view_to_dict_omits_missing_fields() -> None:
    view = PotBalanceView(id="acc_1", balance="£1.00")

    assert view.to_dict() == {"balance": "£1.00"}


@pytest.mark.asyncio
async def test_requested_pot_only(store) -> None:
    refresh = RecordingRefresh()
    monzo = FakeMonzo({"/pots": [(200, _two_pots())]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, refresh), client)

        views = await reporter.fetch_balances("user_1", ["acc_1"], ["pot_A"])

    assert [view.to_dict() for view in views] == [
        {
            "name": "Holiday",
            "balance": "£123.45",
            "cover_image_url": "https://images.example.com/pot_A.png",
        }
    ]
    request = monzo.calls("/pots")[0]
    assert request.url.params["current_account_id"] == "acc_1"
    assert request.headers["authorization"] == "Bearer access-1"
    assert refresh.calls == []


@pytest.mark.asyncio
async def test_unknown_pot_ids_dropped_silently(store) -> None:
    monzo = FakeMonzo({"/pots": [(200, _two_pots())]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, RecordingRefresh()), client)

        views = await reporter.fetch_balances("user_1", ["acc_1"], ["pot_B", "pot_typo"])

    assert [view.id for view in views] == ["pot_B"]


@pytest.mark.asyncio
async def test_currency_follows_upstream(store) -> None:
    monzo = FakeMonzo(
        {"/pots": [(200, pots_payload(pot("pot_E", "Euro trip", 2050, currency="EUR")))]}
    )
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, RecordingRefresh()), client)

        views = await reporter.fetch_balances("user_1", ["acc_1"], ["pot_E"])

    assert views[0].balance == "€20.50"


@pytest.mark.asyncio
async def test_all_pots_when_none_requested(store) -> None:
    payload = pots_payload(
        pot("pot_A", "Holiday", 12345),
        pot("pot_gone", "Old", 0, deleted=True),
        pot("pot_B", "Rainy day", 500),
    )
    monzo = FakeMonzo({"/pots": [(200, payload)]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, RecordingRefresh()), client)

        views = await reporter.fetch_balances("user_1", ["acc_1"], [])

    assert [view.id for view in views] == ["pot_A", "pot_B"]


@pytest.mark.asyncio
async def test_whole_accounts_mode(store) -> None:
    monzo = FakeMonzo(
        {
            "/balance": [
                (200, {"balance": 100, "total_balance": 200, "currency": "GBP", "spend_today": 0})
            ]
        }
    )
    async with monzo.client() as client:
        reporter = BalanceReporter(
            await _token_manager(store, RecordingRefresh()),
            client,
            mode=ReportMode.WHOLE_ACCOUNTS,
        )

        views = await reporter.fetch_balances("user_1", ["acc_1", "acc_2"], [])

    assert [view.to_dict() for view in views] == [{"balance": "£1.00"}, {"balance": "£1.00"}]
    assert [r.url.params["account_id"] for r in monzo.calls("/balance")] == ["acc_1", "acc_2"]


@pytest.mark.asyncio
async def test_whole_accounts_mode_still_filters_requested_pots(store) -> None:
    monzo = FakeMonzo({"/pots": [(200, _two_pots())]})
    async with monzo.client() as client:
        reporter = BalanceReporter(
            await _token_manager(store, RecordingRefresh()),
            client,
            mode=ReportMode.WHOLE_ACCOUNTS,
        )

        views = await reporter.fetch_balances("user_1", ["acc_1"], ["pot_A"])

    assert [view.id for view in views] == ["pot_A"]
    assert monzo.calls("/balance") == []


@pytest.mark.asyncio
async def test_single_401_refreshes_and_retries_once(store) -> None:
    refresh = RecordingRefresh(make_credential("access-2", "refresh-2"))
    monzo = FakeMonzo({"/pots": [(401, {"code": "unauthorized"}), (200, _two_pots())]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, refresh), client)

        views = await reporter.fetch_balances("user_1", ["acc_1"], ["pot_A"])

    assert [view.id for view in views] == ["pot_A"]
    assert len(refresh.calls) == 1
    calls = monzo.calls("/pots")
    assert len(calls) == 2
    assert calls[0].headers["authorization"] == "Bearer access-1"
    assert calls[1].headers["authorization"] == "Bearer access-2"


@pytest.mark.asyncio
async def test_second_401_is_final(store) -> None:
    refresh = RecordingRefresh(make_credential("access-2", "refresh-2"))
    monzo = FakeMonzo({"/pots": [(401, {"code": "unauthorized"})]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, refresh), client)

        with pytest.raises(UpstreamRequestError) as excinfo:
            await reporter.fetch_balances("user_1", ["acc_1"], ["pot_A"])

    assert excinfo.value.upstream_status == 401
    assert len(refresh.calls) == 1
    assert len(monzo.calls("/pots")) == 2


@pytest.mark.asyncio
async def test_other_errors_not_retried(store) -> None:
    refresh = RecordingRefresh()
    monzo = FakeMonzo({"/pots": [(503, {"code": "unavailable"}), (200, _two_pots())]})
    async with monzo.client() as client:
        reporter = BalanceReporter(await _token_manager(store, refresh), client)

        with pytest.raises(UpstreamRequestError):
            await reporter.fetch_balances("user_1", ["acc_1"], ["pot_A"])

    assert refresh.calls == []
    assert len(monzo.calls("/pots")) == 1
