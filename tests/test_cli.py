"""Tests for the CLI interface."""

import json

import pytest

from leadmerge.store import SQLiteLeadStore
from leadmerge.ui.cli import create_parser, main

TENANT = 'tenant-a'


@pytest.fixture
def lead_db(tmp_path, make_lead):
    """Create a lead database with one email group and one similar-name group."""
    path = tmp_path / 'leads.db'
    with SQLiteLeadStore(path, create=True) as store:
        for lead in (
            make_lead(email="x@y.com", first_name="Ann", last_name="Lee", tags=["a"]),
            make_lead(email="X@Y.com", first_name="Bob", last_name="Ray", tags=["b"]),
            make_lead(email="p@y.com", first_name="Jon", last_name="Smith"),
            make_lead(email="q@y.com", first_name="John", last_name="Smith"),
            make_lead(email="r@y.com", first_name="Maria", last_name="Garcia"),
        ):
            store.insert_or_update(lead)
    return str(path)


def run(db, *args):
    command, rest = args[0], list(args[1:])
    return main([command, db, '-t', TENANT] + rest)


def test_create_parser():
    """Test that the argument parser is created correctly."""
    parser = create_parser()

    assert parser is not None
    assert parser.prog == 'leadmerge'


def test_cli_no_arguments():
    """Test CLI with no arguments shows help."""
    exit_code = main([])
    assert exit_code == 0


def test_cli_missing_database(capsys):
    """Test commands against a non-existent database."""
    exit_code = main(['scan', '/nonexistent/leads.db', '-t', TENANT])

    assert exit_code == 1
    captured = capsys.readouterr()
    assert 'Database not found' in captured.err


def test_cli_policy_set_and_show(lead_db, capsys):
    """Test configuring the prevention policy once."""
    assert run(lead_db, 'policy', 'show') == 0
    assert 'Duplicate prevention: none' in capsys.readouterr().out

    assert run(lead_db, 'policy', 'set', 'email') == 0
    assert 'set to email' in capsys.readouterr().out

    assert run(lead_db, 'policy', 'show') == 0
    captured = capsys.readouterr()
    assert 'Duplicate prevention: email' in captured.out
    assert 'Configured at:' in captured.out


def test_cli_policy_set_twice(lead_db, capsys):
    """Test that changing a configured policy fails."""
    run(lead_db, 'policy', 'set', 'email')
    capsys.readouterr()

    exit_code = run(lead_db, 'policy', 'set', 'phone')

    assert exit_code == 1
    assert 'already configured' in capsys.readouterr().err


def test_cli_policy_set_requires_field(lead_db, capsys):
    """Test policy set without a field."""
    assert run(lead_db, 'policy', 'set') == 1
    assert 'requires a field' in capsys.readouterr().err


def test_cli_check(lead_db, capsys):
    """Test the intake duplicate check."""
    run(lead_db, 'policy', 'set', 'email')
    capsys.readouterr()

    assert run(lead_db, 'check', 'X@y.com') == 0
    assert 'Duplicate of lead-1' in capsys.readouterr().out

    assert run(lead_db, 'check', 'new@y.com') == 0
    assert 'Not a duplicate' in capsys.readouterr().out


def test_cli_scan(lead_db, capsys):
    """Test printing duplicate groups."""
    exit_code = run(lead_db, 'scan')

    assert exit_code == 0
    captured = capsys.readouterr()
    assert 'DUPLICATE GROUPS (2)' in captured.out
    assert 'exact_email (100%)' in captured.out
    assert 'similar_name (80%)' in captured.out


def test_cli_scan_json(lead_db, capsys):
    """Test machine-readable scan output."""
    exit_code = run(lead_db, 'scan', '--json')

    assert exit_code == 0
    groups = json.loads(capsys.readouterr().out)
    assert [g['match_type'] for g in groups] == ['exact_email', 'similar_name']
    assert groups[0]['primary_lead_id'] == 'lead-1'
    assert [lead['id'] for lead in groups[1]['leads']] == ['lead-3', 'lead-4']


def test_cli_scan_exact_without_policy(lead_db, capsys):
    """Test that an exact scan needs a configured policy."""
    assert run(lead_db, 'scan', '--exact') == 0
    assert 'No duplicates found.' in capsys.readouterr().out


def test_cli_stats(lead_db, capsys):
    """Test the statistics summary."""
    exit_code = run(lead_db, 'stats')

    assert exit_code == 0
    captured = capsys.readouterr()
    assert 'DUPLICATE STATISTICS' in captured.out
    assert 'Duplicate Groups:       2' in captured.out
    assert 'Leads to Remove:        2' in captured.out


def test_cli_merge(lead_db, capsys, tmp_path):
    """Test merging two leads with an audit record."""
    exit_code = run(lead_db, 'merge', 'lead-1', 'lead-2', '--audit')

    assert exit_code == 0
    assert 'Merged 1 lead(s) into lead-1' in capsys.readouterr().out
    assert (tmp_path / 'leads.audit.db').exists()
    with SQLiteLeadStore(lead_db) as store:
        assert store.get(TENANT, 'lead-2') is None
        assert store.get(TENANT, 'lead-1').tags == ["a", "b"]


def test_cli_merge_same_lead(lead_db, capsys):
    """Test that merging a lead into itself is an error."""
    assert run(lead_db, 'merge', 'lead-1', 'lead-1') == 1
    assert 'Error' in capsys.readouterr().err


def test_cli_merge_all_dry_run(lead_db, capsys):
    """Test that a dry run changes nothing."""
    exit_code = run(lead_db, 'merge-all', '--dry-run')

    assert exit_code == 0
    assert 'keep lead-1, remove 1' in capsys.readouterr().out
    with SQLiteLeadStore(lead_db) as store:
        assert len(store.find(TENANT)) == 5


def test_cli_merge_all(lead_db, capsys, tmp_path):
    """Test merging every group with a policy file."""
    policy_file = tmp_path / 'policy.json'
    policy_file.write_text(json.dumps({'tags': 'keep_primary', 'leadScore': 'keep_highest'}))

    exit_code = run(lead_db, 'merge-all', '--policy-file', str(policy_file), '-w', '2')

    assert exit_code == 0
    assert 'Merged 2 group(s), 0 failed' in capsys.readouterr().out
    with SQLiteLeadStore(lead_db) as store:
        assert [lead.id for lead in store.find(TENANT)] == ['lead-1', 'lead-3', 'lead-5']
        assert store.get(TENANT, 'lead-1').tags == ["a"]


def test_cli_merge_all_partial_failure(tmp_path, make_lead, capsys):
    """Test exit code 2 when overlapping groups leave one unmergeable."""
    path = tmp_path / 'leads.db'
    with SQLiteLeadStore(path, create=True) as store:
        for _ in range(2):
            store.insert_or_update(make_lead(
                first_name="Priya", last_name="Patel", program_interest=["Nursing"]
            ))

    exit_code = run(str(path), 'merge-all')

    assert exit_code == 2
    captured = capsys.readouterr()
    assert 'Merged 1 group(s), 1 failed' in captured.out
    assert 'name_program_priya patel|nursing' in captured.err
