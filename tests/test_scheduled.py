import importlib.util
import json
import os
import threading
from unittest.mock import Mock

from tapminer.database.store import MemoryStore
from tapminer.exceptions import ConfigurationError
from tapminer.mining.distribution import DistributionOutcome, DistributionStatus
from tapminer.services import build_services
from tapminer.tasks.scheduled import DistributionScheduler

from conftest import WALLET_A

SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'distribute.py')


def load_script():
    spec = importlib.util.spec_from_file_location('distribute_script', SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestDistributionScheduler:

    def test_tick_returns_outcome(self):
        orchestrator = Mock()
        orchestrator.attempt.return_value = DistributionOutcome(
            DistributionStatus.NOTHING_TO_DISTRIBUTE, 'Session still active', session_id=1)

        outcome = DistributionScheduler(orchestrator).run_distribution()

        assert outcome.status == DistributionStatus.NOTHING_TO_DISTRIBUTE

    def test_tick_survives_errors(self):
        orchestrator = Mock()
        orchestrator.attempt.side_effect = RuntimeError("boom")

        assert DistributionScheduler(orchestrator).run_distribution() is None

    def test_background_loop_triggers_attempts(self):
        ticked = threading.Event()
        orchestrator = Mock()
        orchestrator.attempt.side_effect = lambda: ticked.set() or DistributionOutcome(
            DistributionStatus.IN_PROGRESS, 'Distribution in progress')
        scheduler = DistributionScheduler(orchestrator, interval=1, poll_interval=0.05)

        scheduler.start()
        try:
            assert ticked.wait(5)
        finally:
            scheduler.stop()

        assert scheduler.scheduler.jobs == []


class TestDistributeScript:

    def test_prints_outcome(self, test_config, clock, gateway, capsys):
        services = build_services(test_config, store=MemoryStore(), gateway_factory=lambda: gateway, clock=clock)
        services.sessions.submit_points(WALLET_A, 10)
        clock.advance(121)

        exit_code = load_script().main([], services=services)

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)['status'] == 'completed'
        assert len(gateway.transfers) == 1

    def test_failed_exit_code(self, test_config, clock, capsys):
        def unconfigured():
            raise ConfigurationError("missing")

        services = build_services(test_config, store=MemoryStore(), gateway_factory=unconfigured, clock=clock)
        services.sessions.submit_points(WALLET_A, 10)
        session_id = services.sessions.get_session().id
        clock.advance(121)

        exit_code = load_script().main(['--session-id', str(session_id)], services=services)

        assert exit_code == 1
        assert json.loads(capsys.readouterr().out)['status'] == 'failed'
