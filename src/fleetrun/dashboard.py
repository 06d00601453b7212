"""TUI Dashboard for fleetrun."""

from __future__ import annotations

from dataclasses import dataclass

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker, WorkerState

from .executor import Executor
from .fleet import HostDescriptor
from .session import ResultFrame, SessionState

STATE_STYLES = {
    SessionState.DISCONNECTED: ("○", "dim"),
    SessionState.CONNECTED: ("◐", "yellow"),
    SessionState.AUTHENTICATED: ("◐", "yellow"),
    SessionState.SESSION_OPEN: ("◑", "yellow"),
    SessionState.EXECUTED: ("◕", "yellow"),
    SessionState.CLOSED: ("●", "yellow"),
}


class HostPanel(Static):
    """A panel displaying the frame of a single host."""

    session_state: reactive[SessionState] = reactive(SessionState.DISCONNECTED)
    outcome: reactive[bool | None] = reactive(None)

    def __init__(self, descriptor: HostDescriptor, index: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.descriptor = descriptor
        self.index = index

    def compose(self) -> ComposeResult:
        yield Label(self.header_text(), id=f"header-{self.index}")
        yield RichLog(
            id=f"log-{self.index}",
            highlight=True,
            markup=True,
            wrap=True,
            auto_scroll=True,
        )

    def header_text(self) -> str:
        icon, color = STATE_STYLES.get(self.session_state, ("?", "white"))
        if self.outcome is True:
            icon, color = "✔", "green"
        elif self.outcome is False:
            icon, color = "✘", "red"
        return f"[{color}]{icon}[/] [{color}][bold]{self.descriptor.address}[/bold]:{self.descriptor.port}[/]"

    def _refresh_header(self) -> None:
        if not self.is_mounted:
            return
        self.query_one(f"#header-{self.index}", Label).update(self.header_text())

    def watch_session_state(self, state: SessionState) -> None:
        self._refresh_header()

    def watch_outcome(self, outcome: bool | None) -> None:
        self._refresh_header()

    def show_frame(self, frame: ResultFrame) -> None:
        """Write a host's output and errors into this panel."""
        log = self.query_one(f"#log-{self.index}", RichLog)
        text = frame.output.decode("utf-8", errors="replace")
        for line in text.splitlines():
            log.write(Text(line))
        if frame.connection_error is not None:
            log.write(Text(f"SSH connection error: {frame.connection_error}", style="bold red"))
        if frame.execution_error is not None:
            log.write(Text(f"Command execution error: {frame.execution_error}", style="bold red"))
        if frame.ok:
            log.write("[green]Completed[/green]")
        self.outcome = frame.ok


class FleetProgress(Static):
    """One-line tally of finished, failed and pending hosts."""

    total: reactive[int] = reactive(0)
    succeeded: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    done: reactive[bool] = reactive(False)

    def count(self, frame: ResultFrame) -> None:
        if frame.ok:
            self.succeeded += 1
        else:
            self.failed += 1

    def render(self) -> str:
        pending = max(self.total - self.succeeded - self.failed, 0)
        tail = "done, press q to close" if self.done else f"{pending} pending"
        return f"[green]{self.succeeded} ok[/] · [red]{self.failed} failed[/] · {tail}"


@dataclass
class FrameArrived(Message):
    """Message for a recorded frame."""
    frame: ResultFrame


@dataclass
class StateChanged(Message):
    """Message for a session state change."""
    host_label: str
    state: SessionState


class Dashboard(App):
    """Live view of a fleet run, one panel per host."""

    CSS = """
    #hosts {
        layout: grid;
        grid-size: 3;
        grid-rows: 12;
        grid-gutter: 0 1;
    }

    HostPanel {
        border: round $secondary;
    }

    HostPanel > Label {
        width: 100%;
        background: $boost;
    }

    HostPanel > RichLog {
        height: 1fr;
    }

    FleetProgress {
        dock: bottom;
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        executor: Executor,
        fleet: list[HostDescriptor],
        payload: str,
        credential: str,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.executor = executor
        self.fleet = fleet
        self.payload = payload
        self.credential = credential
        self.panels: dict[str, HostPanel] = {}
        self.frames: list[ResultFrame] = []
        self.run_finished = False
        self._fleet_worker: Worker | None = None
        self._quit_requested = False

        # Frames still go to the log; the dashboard replaces the console
        executor.sink.listener = self._on_frame
        executor.runner.on_state = self._on_state

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        # Hosts sharing an address share a panel
        with VerticalScroll(id="hosts"):
            for i, host in enumerate(self.fleet):
                if host.address in self.panels:
                    continue
                panel = HostPanel(host, i, id=f"panel-{i}")
                self.panels[host.address] = panel
                yield panel

        yield FleetProgress(id="progress")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(FleetProgress).total = len(self.fleet)
        self.title = f"fleetrun: {len(self.fleet)} hosts"
        # The executor runs its own event loop in a worker thread
        self._fleet_worker = self.run_worker(
            self.executor.execute(self.fleet, self.payload, self.credential),
            name="fleet",
            thread=True,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker is not self._fleet_worker:
            return
        if event.state == WorkerState.SUCCESS:
            self.run_finished = True
            self.query_one(FleetProgress).done = True
        elif event.state == WorkerState.ERROR:
            self.notify(f"Run failed: {event.worker.error}", severity="error")

    def _on_frame(self, frame: ResultFrame) -> None:
        """Called by the sink from the worker thread."""
        self.post_message(FrameArrived(frame))

    def _on_state(self, host_label: str, state: SessionState) -> None:
        """Called by the runner from the worker thread."""
        self.post_message(StateChanged(host_label, state))

    def on_frame_arrived(self, message: FrameArrived) -> None:
        self.frames.append(message.frame)
        panel = self.panels.get(message.frame.host_label)
        if panel is not None:
            panel.show_frame(message.frame)
        self.query_one(FleetProgress).count(message.frame)

    def on_state_changed(self, message: StateChanged) -> None:
        panel = self.panels.get(message.host_label)
        if panel is not None:
            panel.session_state = message.state

    async def action_quit(self) -> None:
        """Close the dashboard; a run in progress needs a second press."""
        if self.run_finished or self._quit_requested:
            if self._fleet_worker is not None and self._fleet_worker.is_running:
                self._fleet_worker.cancel()
            self.exit()
            return
        self._quit_requested = True
        self.notify("Hosts are still running. Press q again to abandon the run.")
