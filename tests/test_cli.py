import pytest
import yaml

from covid_report import __main__ as cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, 'configure_logging', lambda *args, **kwargs: None)


@pytest.fixture
def config_file(tmp_path, wide_tables):
    source = tmp_path / 'src'
    source.mkdir()
    files = {metric: f'{metric}.csv' for metric in wide_tables}
    for metric, table in wide_tables.items():
        table.to_csv(source / files[metric], index=False)
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'world': {'base_url': str(source), 'files': files},
        'report': {'dpi': 40},
    }))
    return path


def test_world_report(tmp_path, config_file, capsys):
    assert cli.main(['world', '--config', str(config_file), '--output', str(tmp_path / 'out'), '--top', '3']) == 0
    assert (tmp_path / 'out' / 'index.html').exists()
    assert 'WORLD REPORT' in capsys.readouterr().out


def test_fetch_failure_exit_code(tmp_path, config_file):
    broken = yaml.safe_load(config_file.read_text())
    broken['world']['base_url'] = str(tmp_path / 'nowhere')
    config_file.write_text(yaml.safe_dump(broken))

    assert cli.main(['world', '--config', str(config_file), '--output', str(tmp_path / 'out')]) == 1
    assert not (tmp_path / 'out').exists()


def test_bad_config_exit_code(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("unknown: {}\n")
    assert cli.main(['world', '--config', str(path)]) == 2


def test_unknown_edition_rejected():
    with pytest.raises(SystemExit):
        cli.main(['mars'])


def test_foreign_output_directory_exit_code(tmp_path, config_file):
    out = tmp_path / 'out'
    out.mkdir()
    (out / 'notes.txt').write_text('keep me')

    assert cli.main(['world', '--config', str(config_file), '--output', str(out)]) == 2
    assert [p.name for p in out.iterdir()] == ['notes.txt']
