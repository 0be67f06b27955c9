"""
Bridge client: ExchangeAdapter + NetworkClient + InstrumentResolver over HTTP.

Talks JSON to an exchange SDK sidecar that owns the wallet, the curve
math and the RPC connection. Big integers travel as decimal strings.

Endpoints expected on the bridge:
  GET  /heartbeat                 - sidecar alive
  GET  /instruments/{name}        - name -> instrument id (404: unknown)
  GET  /price/{id}                - current price
  POST /quote/buy, /quote/sell    - size for a budget
  POST /simulate/fill             - liquidity simulation
  POST /stop-loss                 - executable stop + list anchors
  GET  /reserve/{id}              - tokens available to borrow
  POST /tx/open, /tx/close        - build an instruction
  POST /tx/submit                 - sign and send
  GET  /tx/{ref}/confirmation     - block until confirmed or failed
  GET  /tx/{ref}/logs             - execution log lines
  GET  /balance                   - wallet collateral balance
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

import httpx

from ledger.models import Side
from orchestrator.contracts import (
    CloseInstructionParams,
    ConfirmationResult,
    FillSimulation,
    OpenInstructionParams,
    Quote,
    StopLossNegotiationResult,
    UnsubmittedTx,
)

logger = logging.getLogger("mbot.gateway")


class BridgeError(Exception):
    """Base class for bridge failures."""

    duration_s: float | None = None


class BridgeUnavailable(BridgeError, ConnectionError):
    """Bridge unreachable or timed out."""


class BridgeRejected(BridgeError, ValueError):
    """Bridge answered with an HTTP error status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(str(value))


def _float(value: Any) -> float | None:
    return None if value is None else float(value)


def _wire(value: Any) -> Any:
    """Request encoding: ints as decimal strings, enums as their value."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Side):
        return value.value
    if isinstance(value, dict):
        return {k: _wire(v) for k, v in value.items()}
    return value


class BridgeClient:
    """
    Synchronous client for the exchange SDK bridge.

    Every call blocks until the bridge answers. Transport failures raise
    BridgeUnavailable, HTTP errors raise BridgeRejected; the orchestrator
    maps them onto its own taxonomy.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 10.0,
        confirm_timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._base_url = base_url.rstrip("/")
        self._confirm_timeout = confirm_timeout
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        logger.info("BridgeClient initialized (bridge=%s)", self._base_url)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BridgeClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as e:
            logger.error("Bridge timeout: %s %s", method, path)
            raise BridgeUnavailable(f"Bridge timeout on {method} {path}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:200]
            logger.error("Bridge HTTP %d: %s %s - %s", status, method, path, body)
            if 400 <= status < 500:
                raise BridgeRejected(f"Bridge rejected request ({status}): {body}", status) from e
            raise BridgeRejected(f"Bridge server error ({status}): {body}", status) from e
        except httpx.TransportError as e:
            logger.error("Bridge connection failed: %s %s: %s", method, path, e)
            raise BridgeUnavailable(f"Bridge unavailable: {e}") from e

    def _post(self, path: str, body: dict) -> dict:
        return self._request("POST", path, json=_wire(body))

    # ---------- health ----------

    def heartbeat(self) -> bool:
        """True when the bridge answers and reports itself alive."""
        try:
            return bool(self._request("GET", "/heartbeat").get("alive", False))
        except BridgeError:
            return False

    # ---------- InstrumentResolver ----------

    def resolve_instrument(self, name: str) -> str | None:
        try:
            data = self._request("GET", f"/instruments/{name}")
        except BridgeRejected as e:
            if e.status_code == 404:
                return None
            raise
        return data.get("instrument_id")

    # ---------- ExchangeAdapter ----------

    def current_price(self, instrument_id: str) -> int | None:
        return _int(self._request("GET", f"/price/{instrument_id}").get("price"))

    def quote_buy_for_budget(self, price: int, budget: int) -> Quote | None:
        return self._quote("/quote/buy", price, budget)

    def quote_sell_for_budget(self, price: int, budget: int) -> Quote | None:
        return self._quote("/quote/sell", price, budget)

    def _quote(self, path: str, price: int, budget: int) -> Quote | None:
        data = self._post(path, {"price": price, "budget": budget})
        size = _int(data.get("size"))
        if size is None:
            return None
        return Quote(end_price=_int(data.get("end_price")) or price, size=size)

    def simulate_fill(self, instrument_id: str, size: int, side: Side) -> FillSimulation | None:
        data = self._post("/simulate/fill", {"instrument_id": instrument_id, "size": size, "side": side})
        if not data:
            return None
        return FillSimulation(
            suggested_size=_int(data.get("suggested_size")),
            suggested_budget=_int(data.get("suggested_budget")),
            completion_pct=_float(data.get("completion_pct")),
            slippage_pct=_float(data.get("slippage_pct")),
        )

    def negotiate_stop_loss(
        self,
        instrument_id: str,
        side: Side,
        size: int,
        target_price: int,
    ) -> StopLossNegotiationResult | None:
        data = self._post(
            "/stop-loss",
            {"instrument_id": instrument_id, "side": side, "size": size, "target_price": target_price},
        )
        if not data:
            return None
        return StopLossNegotiationResult(
            executable_price=_int(data.get("executable_price")),
            prev_anchor=data.get("prev_anchor"),
            next_anchor=data.get("next_anchor"),
            leverage=_float(data.get("leverage")),
            stop_loss_percentage=_float(data.get("stop_loss_percentage")),
            trade_amount_estimate=_int(data.get("trade_amount")),
            iteration_count=int(data.get("iterations", 0)),
        )

    def borrow_reserve(self, instrument_id: str) -> int:
        return _int(self._request("GET", f"/reserve/{instrument_id}").get("borrow_reserve")) or 0

    # ---------- NetworkClient ----------

    def build_open_instruction(self, params: OpenInstructionParams) -> UnsubmittedTx:
        data = self._post("/tx/open", asdict(params))
        return UnsubmittedTx(payload=data["tx"], order_ref=data.get("order_ref"))

    def build_close_instruction(self, params: CloseInstructionParams) -> UnsubmittedTx:
        data = self._post("/tx/close", asdict(params))
        return UnsubmittedTx(payload=data["tx"], order_ref=params.order_ref)

    def submit(self, tx: UnsubmittedTx) -> str:
        return str(self._post("/tx/submit", {"tx": tx.payload})["tx_ref"])

    def await_confirmation(self, tx_ref: str) -> ConfirmationResult:
        data = self._request(
            "GET",
            f"/tx/{tx_ref}/confirmation",
            params={"timeout_s": self._confirm_timeout},
            timeout=self._confirm_timeout + 5.0,
        )
        return ConfirmationResult(ok=bool(data.get("ok")), error=data.get("error"))

    def fetch_execution_log(self, tx_ref: str) -> list[str]:
        return [str(line) for line in self._request("GET", f"/tx/{tx_ref}/logs").get("logs", [])]

    def balance(self) -> int:
        return _int(self._request("GET", "/balance").get("balance")) or 0
