"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest

from reconciler.cli import build_parser, load_bundle, main, parse_source_arg
from reconciler.core.errors import ReconcilerError


@pytest.fixture
def bundle_files(tmp_path, epic_bundle, humana_bundle):
    """Write both bundles to disk."""
    epic_path = tmp_path / "epic.json"
    humana_path = tmp_path / "humana.json"
    epic_path.write_text(json.dumps(epic_bundle))
    humana_path.write_text(json.dumps(humana_bundle))
    return epic_path, humana_path


class TestLoadBundle:
    """Tests for bundle loading."""

    def test_keyed_bundle(self, bundle_files):
        """Test loading a keyed bundle."""
        epic_path, _ = bundle_files
        assert load_bundle(epic_path)["patient"]["id"] == "epic-pat-1"

    def test_fhir_bundle(self, tmp_path):
        """Test that FHIR Bundle resources are split by type."""
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps({
            "resourceType": "Bundle",
            "entry": [{"resource": {"resourceType": "Condition", "id": "c1"}}],
        }))

        assert load_bundle(path)["conditions"] == [{"resourceType": "Condition", "id": "c1"}]

    def test_missing_file(self, tmp_path):
        """Test a missing file."""
        with pytest.raises(ReconcilerError, match="File not found"):
            load_bundle(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        """Test a file that is not JSON."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ReconcilerError, match="Could not read bundle"):
            load_bundle(path)

    def test_not_an_object(self, tmp_path):
        """Test a JSON array instead of an object."""
        path = tmp_path / "list.json"
        path.write_text("[]")

        with pytest.raises(ReconcilerError, match="must be a JSON object"):
            load_bundle(path)


class TestParseSourceArg:
    """Tests for SOURCE=PATH parsing."""

    def test_valid(self):
        """Test a well-formed argument."""
        assert parse_source_arg("epic=/tmp/a=b.json") == ("epic", "/tmp/a=b.json")

    @pytest.mark.parametrize("value", ["epic.json", "=epic.json", "epic="])
    def test_invalid(self, value):
        """Test malformed arguments."""
        with pytest.raises(ReconcilerError):
            parse_source_arg(value)


class TestMain:
    """Tests for the CLI entry point."""

    def test_parser_requires_command(self):
        """Test that a subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_normalize(self, bundle_files, capsys):
        """Test the normalize command."""
        epic_path, _ = bundle_files

        assert main(["normalize", str(epic_path), "--source", "epic"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["_meta"]["source"] == "epic"
        assert output["_meta"]["apiEnriched"] is False
        assert len(output["medications"]) == 2
        assert "_raw" not in output["labs"][0]

    def test_normalize_raw(self, bundle_files, capsys):
        """Test that --raw includes the source payloads."""
        epic_path, _ = bundle_files

        assert main(["normalize", str(epic_path), "-s", "epic", "--raw"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["labs"][0]["_raw"]["id"] == "epic-obs-1"

    def test_reconcile(self, bundle_files, capsys):
        """Test the reconcile command."""
        epic_path, humana_path = bundle_files

        assert main(["reconcile", f"epic={epic_path}", f"humana={humana_path}", "--indent", "0"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["_meta"]["sources"] == ["epic", "humana"]
        assert output["_meta"]["counts"]["medications"] == {"records": 3, "groups": 2}
        assert len(output["patients"]) == 2

    def test_missing_file(self, tmp_path, capsys):
        """Test that input errors exit with status 1."""
        assert main(["normalize", str(tmp_path / "missing.json"), "--source", "epic"]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_bad_source_argument(self, bundle_files, capsys):
        """Test a reconcile argument without a source tag."""
        epic_path, _ = bundle_files

        assert main(["reconcile", str(epic_path)]) == 1
        assert "Expected SOURCE=PATH" in capsys.readouterr().err

    @patch("reconciler.services.aggregator.TerminologyClient")
    def test_normalize_enrich_after_command(self, client_cls, bundle_files, mock_lookup, capsys):
        """Test that --enrich is accepted after the command and turns lookups on."""
        client_cls.return_value.__aenter__.return_value = mock_lookup
        client_cls.return_value.__aexit__.return_value = False
        epic_path, _ = bundle_files

        assert main(["normalize", str(epic_path), "--source", "epic", "--enrich"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["_meta"]["apiEnriched"] is True
        client_cls.assert_called_once_with()

    @patch("reconciler.services.aggregator.TerminologyClient")
    def test_reconcile_enrich_after_bundles(self, client_cls, bundle_files, mock_lookup, capsys):
        """Test --enrich after the reconcile bundle list."""
        client_cls.return_value.__aenter__.return_value = mock_lookup
        client_cls.return_value.__aexit__.return_value = False
        epic_path, humana_path = bundle_files

        assert main(["reconcile", f"epic={epic_path}", f"humana={humana_path}", "--enrich"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["_meta"]["apiEnriched"] is True
        assert client_cls.call_count == 2
