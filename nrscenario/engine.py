"""Simulation engine interface and a trace-replay engine.

Radio propagation, scheduling and handover decisions belong to the engine.
The scenario only hands it positions and traffic profiles, subscribes a
telemetry sink, runs it, and reads back the final flow snapshot.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from .exceptions import EngineError
from .network import CellSite, FlowRecord, Terminal
from .telemetry import TelemetrySink
from .traffic import TrafficProfile


logger = logging.getLogger(__name__)


class SimulationEngine(Protocol):

    def install(self, sites: List[CellSite], terminals: List[Terminal],
                profiles: List[TrafficProfile]) -> None: ...

    def attach_to_closest_cell(self) -> None: ...

    def subscribe(self, sink: TelemetrySink) -> None: ...

    def run(self, stop_time: float) -> None: ...

    def flow_stats(self) -> Iterable[FlowRecord]: ...

    def address_table(self) -> Mapping[str, int]: ...


def default_ue_address(index: int) -> str:
    """UE addresses handed out by the EPC, starting at 7.0.0.2"""
    host = index + 2
    return f'7.0.{host // 256}.{host % 256}'


# event type -> (sink method, event fields passed after imsi)
_EVENT_DISPATCH = {
    'sinr': ('on_channel_sample', ('value',)),
    'rsrp': ('on_rsrp', ('cell', 'value')),
    'rsrq': ('on_rsrq', ('cell', 'value')),
    'handover_start': ('on_handover_start', ('source', 'target')),
    'handover_success': ('on_handover_success', ('source', 'target')),
    'handover_failure': ('on_handover_failure', ('source', 'target')),
}

_FLOW_KEYS = {
    'flowId': 'flow_id',
    'sourceAddress': 'source_address',
    'destinationAddress': 'destination_address',
    'sourcePort': 'source_port',
    'destinationPort': 'destination_port',
    'protocol': 'protocol',
    'txPackets': 'tx_packets',
    'rxPackets': 'rx_packets',
    'txBytes': 'tx_bytes',
    'rxBytes': 'rx_bytes',
    'delaySum': 'delay_sum',
    'jitterSum': 'jitter_sum',
    'timeFirstTxPacket': 'time_first_tx_packet',
    'timeLastRxPacket': 'time_last_rx_packet',
}


class ReplayEngine:
    """Delivers recorded telemetry events and exposes a recorded flow snapshot"""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None,
                 flows: Optional[List[FlowRecord]] = None,
                 identities: Optional[List[Dict[str, Any]]] = None):
        self.events = list(events or [])
        self.flows = list(flows or [])
        self.identities = list(identities or [])

        self.sites: List[CellSite] = []
        self.terminals: List[Terminal] = []
        self.profiles: List[TrafficProfile] = []
        self.sinks: List[TelemetrySink] = []
        self.attached = False
        self.finished = False
        self.current_time = 0.0

    def install(self, sites: List[CellSite], terminals: List[Terminal],
                profiles: List[TrafficProfile]) -> None:
        """Assign each terminal its subscriber identity and address"""

        self.sites = sites
        self.terminals = terminals
        self.profiles = profiles
        self.attached = False
        self.finished = False
        self.current_time = 0.0

        for terminal in terminals:
            if terminal.index < len(self.identities):
                identity = self.identities[terminal.index]
                terminal.imsi = int(identity['imsi'])
                terminal.address = str(identity.get('address', default_ue_address(terminal.index)))
            else:
                terminal.imsi = terminal.index + 1
                terminal.address = default_ue_address(terminal.index)

    def attach_to_closest_cell(self) -> None:
        if not self.terminals:
            raise EngineError('attach_to_closest_cell() called before install()')
        self.attached = True

    def subscribe(self, sink: TelemetrySink) -> None:
        if sink not in self.sinks:
            self.sinks.append(sink)

    def run(self, stop_time: float) -> None:
        """Replay every event up to stop_time, in time order"""

        if not self.attached:
            raise EngineError('run() called before terminals were attached')
        if self.finished:
            raise EngineError('Trace already replayed; install() again before another run')

        delivered = 0
        for event in sorted(self.events, key=lambda e: float(e.get('time', 0.0))):
            event_time = float(event.get('time', 0.0))
            if event_time > stop_time:
                break
            self.current_time = event_time
            self._dispatch(event)
            delivered += 1

        self.current_time = stop_time
        self.finished = True
        logger.info('Replayed %d of %d trace events (stop time %.1f s)',
                    delivered, len(self.events), stop_time)

    def _dispatch(self, event: Dict[str, Any]):
        event_type = event.get('type')
        if event_type not in _EVENT_DISPATCH:
            raise EngineError(f'Unknown trace event type: {event_type}')

        method_name, fields = _EVENT_DISPATCH[event_type]
        try:
            args = [int(event['imsi'])] + [event[name] for name in fields]
        except KeyError as e:
            raise EngineError(f'Trace event {event_type} is missing field {e}') from e

        for sink in self.sinks:
            getattr(sink, method_name)(*args)

    def flow_stats(self) -> List[FlowRecord]:
        if not self.finished:
            raise EngineError('Flow statistics requested before the run finished')
        return list(self.flows)

    def address_table(self) -> Dict[str, int]:
        return {t.address: t.imsi for t in self.terminals if t.address is not None}


def parse_flow_record(entry: Dict[str, Any]) -> FlowRecord:
    kwargs = {}
    for key, value in entry.items():
        field_name = _FLOW_KEYS.get(key)
        if field_name is not None:
            kwargs[field_name] = value
    try:
        return FlowRecord(**kwargs)
    except TypeError as e:
        raise EngineError(f'Malformed flow record: {entry}') from e


class TraceReplayEngine(ReplayEngine):
    """ReplayEngine loaded from a JSON trace file.

    The file holds ``terminals`` (imsi/address per terminal index),
    ``events`` (time, type, imsi and per-type fields) and ``flows``
    (camelCase flow-monitor fields).
    """

    def __init__(self, trace_path: str):
        path = Path(trace_path)
        if not path.is_file():
            raise EngineError(f'Trace file not found: {trace_path}')

        try:
            with open(path, 'r') as f:
                trace = json.load(f)
        except json.JSONDecodeError as e:
            raise EngineError(f'Trace file {trace_path} is not valid JSON: {e}') from e

        if not isinstance(trace, dict):
            raise EngineError(f'Trace file {trace_path} must contain an object')

        flows = [parse_flow_record(entry) for entry in trace.get('flows', [])]
        super().__init__(events=trace.get('events', []), flows=flows,
                         identities=trace.get('terminals', []))
        self.trace_path = str(path)
