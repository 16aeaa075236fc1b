"""Pairing sessions driven through an interactive bluetoothctl agent."""
import logging
import re
import secrets
import time
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from bluedash.config import BLUETOOTHCTL_CMD
from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.process_runner import ProcessError, ProcessRunner
from bluedash.models.pairing import PairingSession, PairState

logger = logging.getLogger(__name__)

_AGENT_SETUP = ("agent on", "default-agent", "pairable on", "discoverable on")
_NON_TERMINAL = (PairState.PAIRING, PairState.CONFIRM)
# Finished sessions beyond this are dropped oldest first
_MAX_SESSIONS = 16


def _on_passkey(session: PairingSession, match: "re.Match[str]", line: str) -> None:
    if session.state is not PairState.PAIRING:
        return
    session.passkey = match.group(1)
    session.state = PairState.CONFIRM


def _on_success(session: PairingSession, match: "re.Match[str]", line: str) -> None:
    session.state = PairState.PAIRED


def _on_failure(session: PairingSession, match: "re.Match[str]", line: str) -> None:
    if session.state not in _NON_TERMINAL:
        return
    session.state = PairState.FAILED
    session.error = line


# Ordered; first match wins, unmatched lines are ignored
_RULES: List[Tuple[Pattern[str], Callable[[PairingSession, "re.Match[str]", str], None]]] = [
    (re.compile(r"passkey\s+([0-9]+)", re.IGNORECASE), _on_passkey),
    (re.compile(r"pairing successful", re.IGNORECASE), _on_success),
    (
        re.compile(
            r"failed to pair|authentication (?:canceled|cancelled|failed|rejected)",
            re.IGNORECASE,
        ),
        _on_failure,
    ),
]


def classify_line(session: PairingSession, line: str) -> None:
    """Apply the first matching rule to the session."""
    text = line.strip()
    if not text:
        return
    for pattern, action in _RULES:
        match = pattern.search(text)
        if match:
            before = session.state
            action(session, match, text)
            if session.state is not before:
                logger.info("Pair %s (%s): %s -> %s", session.id, session.mac, before.value, session.state.value)
            return


def _new_session_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class PairingOrchestrator:
    """Owns pairing sessions; one bluetoothctl agent process per session."""

    def __init__(self, runner: ProcessRunner, directory: DeviceDirectory) -> None:
        self._runner = runner
        self._directory = directory
        self._sessions: Dict[str, PairingSession] = {}

    async def start(self, mac: str) -> PairingSession:
        """Spawn the agent and request pairing; returns while still pairing."""
        self._prune()
        process = await self._runner.spawn_interactive(BLUETOOTHCTL_CMD)
        session = PairingSession(id=_new_session_id(), mac=mac, process=process)
        self._sessions[session.id] = session

        process.on_line(lambda line: self._on_line(session, line))
        process.on_exit(lambda code: self._on_exit(session, code))

        logger.info("Pair %s: starting for %s", session.id, mac)
        try:
            for command in _AGENT_SETUP:
                process.send(command)
            process.send(f"pair {mac}")
        except ProcessError as e:
            session.state = PairState.FAILED
            session.error = session.error or str(e)
            self._release(session)
        return session

    def _on_line(self, session: PairingSession, line: str) -> None:
        classify_line(session, line)
        if session.state is PairState.FAILED:
            self._release(session)

    def _release(self, session: PairingSession) -> None:
        """Stop the agent of a finished session."""
        if session.process is not None:
            session.process.kill()

    def _prune(self) -> None:
        finished = [s for s in self._sessions.values() if s.state not in _NON_TERMINAL]
        excess = len(self._sessions) - _MAX_SESSIONS + 1
        for session in finished[:max(excess, 0)]:
            self._release(session)
            del self._sessions[session.id]
            logger.debug("Pair %s: dropped", session.id)

    def _on_exit(self, session: PairingSession, code: Optional[int]) -> None:
        if session.state is PairState.PAIRING:
            session.state = PairState.FAILED
            session.error = session.error or "bluetoothctl exited"
            logger.info("Pair %s: agent exited (%s) while pairing", session.id, code)

    def get(self, session_id: str) -> Optional[PairingSession]:
        return self._sessions.get(session_id)

    async def status(self, session_id: str) -> Optional[PairingSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.state is PairState.PAIRED and not session.finalized:
            session.finalized = True
            await self._finalize(session)
            self._release(session)
        return session

    async def _finalize(self, session: PairingSession) -> None:
        """Best-effort trust + connect; pairing stays successful either way."""
        try:
            await self._directory.trust(session.mac)
        except ProcessError as e:
            logger.debug("Pair %s: trust failed: %s", session.id, e)
        try:
            await self._directory.connect_direct(session.mac)
        except ProcessError as e:
            logger.debug("Pair %s: connect failed: %s", session.id, e)

    def confirm(self, session_id: str, accept: bool) -> Optional[PairingSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.state not in _NON_TERMINAL:
            return session
        try:
            session.process.send("yes" if accept else "no")
        except ProcessError as e:
            logger.warning("Pair %s: confirm write failed: %s", session.id, e)
            session.state = PairState.FAILED
            session.error = session.error or "Failed to respond to agent"
            self._release(session)
        return session

    def shutdown(self) -> None:
        """Kill every agent process (application shutdown)."""
        for session in self._sessions.values():
            self._release(session)
