# SPDX-License-Identifier: Apache-2.0

"""
Scan-resolve-claim state machine.

One decoded identifier becomes at most one claim or attendance write. The
decoder is disabled as soon as a payload is accepted and stays disabled
until the operator explicitly scans again, so a code held in front of the
camera cannot produce a second submission. Conflict answers from the
backend ("already redeemed") are an ordinary terminal state.

State flow::

    idle -> resolving -> eligible | ineligible | resolve_error
    eligible -> claiming -> success | conflict | ineligible | claim_error
"""

import logging
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from opentelemetry import trace
from pydantic import ValidationError

from ..middleware.error_handler import (
    CustomException,
    NetworkFailureException,
    NotFoundException,
)
from ..models.entities import Member
from ..models.enums import ClaimOutcome, ScanState, ScanTargetType
from .backend import BackendClient, ClaimResponse

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

TERMINAL_STATES = (
    ScanState.INELIGIBLE,
    ScanState.RESOLVE_ERROR,
    ScanState.SUCCESS,
    ScanState.CONFLICT,
    ScanState.CLAIM_ERROR,
)
RETRYABLE_STATES = (ScanState.RESOLVE_ERROR, ScanState.CLAIM_ERROR)

MESSAGES = {
    "ready": "Ready to scan.",
    "resolving": "Looking up member...",
    "claiming": "Recording...",
    "not_found": "Member not found in system. Check the ID and scan again.",
    "not_found_cached": "Member not found in the cached member list. Connect to the network to refresh it.",
    "network_resolve": "Network unavailable. Could not look up the member. Retry or scan again.",
    "unexpected_resolve": "Could not look up the member. Retry or scan again.",
    "not_approved": "{name} is not an approved member (status: {status}).",
    "not_participant": "{name} is not a participant of this benefit.",
    "eligible": "{name} is eligible. Confirm to record.",
    "not_eligible": "{name} is not eligible: {detail}",
    "benefit_success": "Benefit released to {name}.",
    "event_success": "Attendance recorded for {name}.",
    "benefit_conflict": "Already redeemed: {name} has already claimed this benefit.",
    "event_conflict": "Already redeemed: {name} is already marked present for this event.",
    "claim_error": "Could not record for {name}: {detail} Retry to submit again.",
}


class FeedDecoder:
    """
    Decoder fed by the scanning device.

    Payloads pushed while the decoder is disabled or closed are dropped.
    """

    def __init__(self):
        self.enabled = False
        self.closed = False
        self.dropped = 0
        self._handler: Optional[Callable[[str], Any]] = None

    def open(self, handler: Callable[[str], Any]):
        if self.closed:
            raise RuntimeError("Decoder has been released")
        self._handler = handler
        self.enabled = True

    def enable(self):
        if not self.closed:
            self.enabled = True

    def disable(self):
        self.enabled = False

    def close(self):
        self.enabled = False
        self.closed = True
        self._handler = None

    def push(self, payload: str) -> bool:
        """Deliver a decoded payload. Returns False when it was dropped or rejected."""
        if not self.enabled or self._handler is None:
            self.dropped += 1
            return False
        return bool(self._handler(payload))


def find_cached_member(raw_members: Optional[List[Dict[str, Any]]], id_number: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive ``id_number`` match against the cached member list."""
    wanted = id_number.strip().lower()
    for raw in raw_members or []:
        profile = raw.get("member_profile") or {}
        candidate = raw.get("id_number") or profile.get("id_number")
        if candidate is not None and str(candidate).strip().lower() == wanted:
            return raw
    return None


class ScanClaimMachine:
    """
    Converts decode events into at most one backend write.

    Args:
        backend: PDAO backend client
        target_type: benefit or event
        target_id: id of the benefit or event being redeemed
        decoder: scoped decoder resource; opened by ``scan_session``
        auto_claim: submit as soon as the member is eligible
        roster_source: cached member list for lookups while offline
        participant_ids: benefit roster when known; ``None`` defers the
            participant check to the backend
        participant_source: re-reads the roster when a member is missing
            from ``participant_ids``
    """

    def __init__(
        self,
        backend: BackendClient,
        target_type: ScanTargetType,
        target_id: str,
        decoder: FeedDecoder,
        auto_claim: bool = True,
        roster_source: Optional[Callable[[], Optional[List[Dict[str, Any]]]]] = None,
        participant_ids: Optional[List[str]] = None,
        participant_source: Optional[Callable[[], Optional[List[str]]]] = None
    ):
        self.backend = backend
        self.target_type = ScanTargetType(target_type)
        self.target_id = str(target_id)
        self.decoder = decoder
        self.auto_claim = auto_claim
        self.roster_source = roster_source
        self.participant_ids = set(participant_ids) if participant_ids is not None else None
        self.participant_source = participant_source

        self.state = ScanState.IDLE
        self.message = MESSAGES["ready"]
        self.payload: Optional[str] = None
        self.member: Optional[Member] = None
        self.record: Optional[Dict[str, Any]] = None
        self.writes_issued = 0
        self.closed = False
        self._generation = 0

    # Transitions

    def _transition(self, state: ScanState, message: str):
        logger.info(
            f"Scan {self.state.value} -> {state.value}",
            extra={"target_type": self.target_type.value, "target_id": self.target_id, "state": state.value}
        )
        self.state = state
        self.message = message

    def _current(self, token: int) -> bool:
        # A teardown or reset bumps the generation; late results are dropped
        return token == self._generation and not self.closed

    @contextmanager
    def _settles(self, token: int, pending: ScanState, failed: ScanState, message: str) -> Iterator[None]:
        """Leave ``pending`` for ``failed`` if the step raises part way."""
        try:
            yield
        except Exception:
            if self.state == pending and self._current(token):
                logger.exception(f"Scan step failed in {pending.value}")
                self._transition(failed, message)
            raise

    def on_decode(self, payload: str) -> bool:
        """Accept a decoded payload when idle. Returns True if it was accepted."""
        if self.closed or self.state != ScanState.IDLE:
            return False
        payload = (payload or "").strip()
        if not payload:
            return False

        self.decoder.disable()
        self.payload = payload
        self._resolve(self._generation)
        return True

    def _resolve(self, token: int):
        guard = self._settles(token, ScanState.RESOLVING, ScanState.RESOLVE_ERROR, MESSAGES["unexpected_resolve"])
        with tracer.start_as_current_span("scanner.resolve") as span, guard:
            span.set_attributes({"scan.target_type": self.target_type.value, "scan.target_id": self.target_id})
            self._transition(ScanState.RESOLVING, MESSAGES["resolving"])

            try:
                raw = self.backend.scan_member(self.payload)
            except NotFoundException:
                if not self._current(token):
                    return
                span.set_attribute("scan.result", "not_found")
                self._transition(ScanState.RESOLVE_ERROR, MESSAGES["not_found"])
                return
            except NetworkFailureException:
                if not self._current(token):
                    return
                raw = self._lookup_cached()
                if raw is None:
                    span.set_attribute("scan.result", "network_failure")
                    self._transition(ScanState.RESOLVE_ERROR, self._offline_message())
                    return
                logger.info("Member resolved from cached list", extra={"target_id": self.target_id})
            except CustomException as e:
                if not self._current(token):
                    return
                span.set_attribute("scan.result", e.error_type)
                self._transition(ScanState.RESOLVE_ERROR, e.message)
                return

            if not self._current(token):
                return
            try:
                self.member = Member.model_validate(raw)
            except ValidationError:
                self._transition(ScanState.RESOLVE_ERROR, MESSAGES["not_found"])
                return
            span.set_attribute("scan.result", "found")
            self._evaluate(token)

    def _lookup_cached(self) -> Optional[Dict[str, Any]]:
        if self.roster_source is None:
            return None
        return find_cached_member(self.roster_source(), self.payload)

    def _offline_message(self) -> str:
        if self.roster_source is not None and self.roster_source():
            return MESSAGES["not_found_cached"]
        return MESSAGES["network_resolve"]

    def _evaluate(self, token: int):
        name = self.member.full_name or self.payload
        if not self.member.is_approved():
            self._transition(
                ScanState.INELIGIBLE,
                MESSAGES["not_approved"].format(name=name, status=self.member.status)
            )
            return
        if self.target_type == ScanTargetType.BENEFIT and not self._is_participant():
            self._transition(ScanState.INELIGIBLE, MESSAGES["not_participant"].format(name=name))
            return

        self._transition(ScanState.ELIGIBLE, MESSAGES["eligible"].format(name=name))
        if self.auto_claim:
            self._claim(token)

    def _is_participant(self) -> bool:
        if self.participant_ids is None or self.member.id in self.participant_ids:
            return True
        if self.participant_source is None:
            return False
        # Participants may have been added since the session opened
        try:
            refreshed = self.participant_source()
        except CustomException as e:
            logger.warning(f"Could not re-read participants for benefit {self.target_id}: {e.message}")
            return True
        if refreshed is None:
            return True
        self.participant_ids = set(refreshed)
        return self.member.id in self.participant_ids

    def confirm(self) -> bool:
        """Submit the claim for an eligible member when auto-claim is off."""
        if self.closed or self.state != ScanState.ELIGIBLE:
            return False
        self._claim(self._generation)
        return True

    def _submit(self) -> ClaimResponse:
        if self.target_type == ScanTargetType.BENEFIT:
            return self.backend.claim_benefit(self.target_id, self.member.id)
        return self.backend.record_attendance(self.target_id, self.member.id)

    def _claim(self, token: int):
        name = self.member.full_name or self.payload
        kind = self.target_type.value

        guard = self._settles(
            token, ScanState.CLAIMING, ScanState.CLAIM_ERROR,
            MESSAGES["claim_error"].format(name=name, detail="Unexpected error.")
        )
        with tracer.start_as_current_span("scanner.claim") as span, guard:
            span.set_attributes({
                "scan.target_type": kind,
                "scan.target_id": self.target_id,
                "member.id": self.member.id,
            })
            self._transition(ScanState.CLAIMING, MESSAGES["claiming"])
            self.writes_issued += 1

            try:
                result = self._submit()
            except CustomException as e:
                if not self._current(token):
                    return
                span.set_attribute("claim.outcome", "error")
                self._transition(ScanState.CLAIM_ERROR, MESSAGES["claim_error"].format(name=name, detail=e.message))
                return

            if not self._current(token):
                logger.info("Dropping claim result for a closed scan session")
                return

            span.set_attribute("claim.outcome", result.outcome.value)
            self.record = result.record
            if result.outcome == ClaimOutcome.CREATED:
                self._transition(ScanState.SUCCESS, self._success_message(name))
            elif result.outcome == ClaimOutcome.ALREADY_RECORDED:
                self._transition(ScanState.CONFLICT, MESSAGES[f"{kind}_conflict"].format(name=name))
            else:
                self._transition(
                    ScanState.INELIGIBLE,
                    MESSAGES["not_eligible"].format(name=name, detail=result.message)
                )

    def _success_message(self, name: str) -> str:
        message = MESSAGES[f"{self.target_type.value}_success"].format(name=name)
        record = self.record or {}
        when = record.get("claimed_at") or record.get("scanned_at") or record.get("created_at")
        if when:
            message += f" Recorded at {_display_time(when)}."
        return message

    def retry(self) -> bool:
        """Repeat the failed step: re-resolve or re-submit."""
        if self.closed or self.state not in RETRYABLE_STATES:
            return False
        if self.state == ScanState.RESOLVE_ERROR:
            self.member = None
            self._resolve(self._generation)
        else:
            self._claim(self._generation)
        return True

    def scan_again(self) -> bool:
        """Operator reset from a terminal state back to idle."""
        if self.closed or self.state in (ScanState.RESOLVING, ScanState.CLAIMING):
            return False
        self._generation += 1
        self.payload = None
        self.member = None
        self.record = None
        self._transition(ScanState.IDLE, MESSAGES["ready"])
        self.decoder.enable()
        return True

    def teardown(self):
        """Release the decoder; any result still in flight is ignored."""
        self._generation += 1
        self.closed = True
        self.decoder.close()
        logger.info(
            "Scan session closed",
            extra={"target_type": self.target_type.value, "target_id": self.target_id, "state": self.state.value}
        )

    def view(self) -> Dict[str, Any]:
        """What the scanner screen renders."""
        member = None
        if self.member is not None:
            member = self.member.model_dump(mode="json")
            member["full_name"] = self.member.full_name
        return {
            "state": self.state.value,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "message": self.message,
            "scanning_enabled": self.decoder.enabled,
            "payload": self.payload,
            "member": member,
            "record": self.record,
            "retryable": self.state in RETRYABLE_STATES,
        }


def _display_time(value: Any) -> str:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return parsed.strftime("%Y-%m-%d %H:%M")


@contextmanager
def scan_session(backend: BackendClient, target_type: ScanTargetType, target_id: str,
                 decoder: Optional[FeedDecoder] = None, **kwargs) -> Iterator[ScanClaimMachine]:
    """Acquire the decoder for one scanning screen and release it on exit."""
    decoder = decoder or FeedDecoder()
    machine = ScanClaimMachine(backend, target_type, target_id, decoder, **kwargs)
    decoder.open(machine.on_decode)
    logger.info(f"Scan session opened for {machine.target_type.value} {machine.target_id}")
    try:
        yield machine
    finally:
        machine.teardown()


class ScanSessionRegistry:
    """
    Holds the single active scan session of this device across requests.

    Opening a session tears down the previous one first.
    """

    def __init__(self, backend: BackendClient,
                 roster_source: Optional[Callable[[], Optional[List[Dict[str, Any]]]]] = None):
        self.backend = backend
        self.roster_source = roster_source
        self.decoder: Optional[FeedDecoder] = None
        self.machine: Optional[ScanClaimMachine] = None
        self._stack: Optional[ExitStack] = None

    def _participant_ids(self, target_type: ScanTargetType, target_id: str) -> Optional[List[str]]:
        if target_type != ScanTargetType.BENEFIT:
            return None
        try:
            participants = self.backend.list_benefit_participants(target_id)
        except NetworkFailureException:
            logger.warning(f"Participant roster for benefit {target_id} unavailable; deferring to backend")
            return None
        ids = []
        for raw in participants:
            user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
            user_id = raw.get("user_id") or user.get("id")
            if user_id is not None:
                ids.append(str(user_id))
        return ids

    def open(self, target_type: ScanTargetType, target_id: str, auto_claim: bool = True) -> ScanClaimMachine:
        self.close()
        target_type = ScanTargetType(target_type)
        participant_ids = self._participant_ids(target_type, target_id)

        stack = ExitStack()
        self.decoder = FeedDecoder()
        self.machine = stack.enter_context(scan_session(
            self.backend, target_type, target_id, self.decoder,
            auto_claim=auto_claim,
            roster_source=self.roster_source,
            participant_ids=participant_ids,
            participant_source=(
                (lambda: self._participant_ids(target_type, target_id))
                if target_type == ScanTargetType.BENEFIT else None
            ),
        ))
        self._stack = stack
        return self.machine

    def current(self) -> ScanClaimMachine:
        if self.machine is None:
            raise NotFoundException("No scan session is open")
        return self.machine

    def decode(self, payload: str) -> bool:
        self.current()
        return self.decoder.push(payload)

    def close(self) -> bool:
        """Tear down the active session. Returns False when none was open."""
        if self._stack is None:
            return False
        self._stack.close()
        self._stack = None
        self.machine = None
        self.decoder = None
        return True
