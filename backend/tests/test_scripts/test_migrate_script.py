"""Tests for the alembic wrapper script."""

import sys
from pathlib import Path
from unittest.mock import patch

scripts_dir = Path(__file__).parent.parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

import migrate  # noqa: E402


class TestMigrateMain:
    """Tests for migrate.main."""

    def test_no_arguments_prints_usage(self, capsys) -> None:
        assert migrate.main([]) == 2
        assert "Usage" in capsys.readouterr().out

    def test_upgrade_defaults_to_head(self) -> None:
        with patch.object(migrate.command, "upgrade") as mock_upgrade:
            assert migrate.main(["upgrade"]) == 0
        assert mock_upgrade.call_args.args[1] == "head"

    def test_downgrade_defaults_to_one_step(self) -> None:
        with patch.object(migrate.command, "downgrade") as mock_downgrade:
            assert migrate.main(["downgrade"]) == 0
        assert mock_downgrade.call_args.args[1] == "-1"

    def test_explicit_revision(self) -> None:
        with patch.object(migrate.command, "upgrade") as mock_upgrade:
            migrate.main(["upgrade", "0001_initial"])
        assert mock_upgrade.call_args.args[1] == "0001_initial"

    def test_unknown_operation(self, capsys) -> None:
        assert migrate.main(["stamp"]) == 2
        assert "Unknown operation" in capsys.readouterr().out

    def test_config_points_at_alembic_dir(self) -> None:
        cfg = migrate.get_config()
        assert cfg.get_main_option("script_location").endswith("alembic")
