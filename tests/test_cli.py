"""Command line tests for scalecue-sim."""

import pytest

from scalecue_sim import cli
from scalecue_sim.runner import SimConfig


class TestArguments:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        config = cli.config_from_args(args)
        assert config.scenario == "steady"
        assert config.count == 20
        assert config.engine == {}
        assert config.realtime is True
        assert config.duration_ms is None

    def test_engine_flags_become_overrides(self):
        args = cli.build_parser().parse_args([
            "--scenario", "burst",
            "--max-workers", "4",
            "--cold-start", "1000",
            "--concurrency", "2",
            "--queue-ttl", "5000",
            "--duration", "3",
            "--fast",
        ])
        config = cli.config_from_args(args)
        assert config.scenario == "burst"
        assert config.engine == {
            "max_workers": 4,
            "cold_start_time_ms": 1000,
            "per_worker_concurrency": 2,
            "max_queue_wait_ms": 5000,
        }
        assert config.duration_ms == 3000
        assert config.realtime is False
        assert config.engine_config().capacity == 2

    def test_list_scenarios_exits_cleanly(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--list-scenarios"])
        assert exc.value.code == 0
        assert "scale_to_zero" in capsys.readouterr().out

    def test_unknown_scenario_rejected(self):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--scenario", "nope"])
        assert exc.value.code == 2

    def test_min_above_max_rejected(self):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--min-workers", "5", "--max-workers", "2"])
        assert exc.value.code == 2

    def test_flag_conflicting_with_scenario_rejected(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--scenario", "scale_to_zero", "--min-workers", "2"])
        assert exc.value.code == 2
        assert "--min-workers conflicts with scenario scale_to_zero" in capsys.readouterr().err


class TestRunWithDisplay:
    async def test_plain_output(self):
        config = SimConfig(count=3, rate=2.0, realtime=False)
        view = await cli.run_with_display(config, use_tui=False)
        assert view.completed == 3

    async def test_verbose_prints_events(self, capsys):
        config = SimConfig(count=1, realtime=False)
        view = await cli.run_with_display(config, verbose=True)
        out = capsys.readouterr().out
        assert view.completed == 1
        assert "completed" in out
        assert "req-0" in out
