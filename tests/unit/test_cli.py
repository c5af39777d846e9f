from typer.testing import CliRunner

from blobnet import blobindex
from blobnet.cli import app
from blobnet.digest import Link, format_digest
from blobnet.gen import car_of, random_bytes

runner = CliRunner()


def test_digest_command(tmp_path):
    path = tmp_path / "blob.bin"
    _, data = random_bytes(32)
    path.write_bytes(data)

    result = runner.invoke(app, ["digest", str(path)])

    assert result.exit_code == 0, result.output
    link = Link.of(data)
    assert format_digest(link.digest) in result.output
    assert str(link) in result.output


def test_digest_missing_file(tmp_path):
    result = runner.invoke(app, ["digest", str(tmp_path / "absent")])
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_index_command_uses_archive_root(tmp_path):
    _, data = random_bytes(64)
    root, car = car_of(data)
    path = tmp_path / "shard.car"
    path.write_bytes(car)

    result = runner.invoke(app, ["index", str(path)])

    assert result.exit_code == 0, result.output
    expected = blobindex.from_shard_archives(root, [car])
    assert str(expected.link()) in result.output
    assert f"Content: {root}" in result.output
    assert "Shards (1):" in result.output


def test_index_command_rejects_garbage(tmp_path):
    path = tmp_path / "shard.car"
    path.write_bytes(b"not an archive")

    result = runner.invoke(app, ["index", str(path)])

    assert result.exit_code == 1
    assert "Cannot index" in result.output


def test_run_command_prints_query_results(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("BLOBNET_CONFIG", "BLOBNET_CACHE", "BLOBNET_TRANSPORT", "BLOBNET_REDIS_URL"):
        monkeypatch.delenv(name, raising=False)

    result = runner.invoke(app, ["run", "--size", "128"])

    assert result.exit_code == 0, result.output
    assert "Query converged after 1 attempt(s)" in result.output
    assert "# Query Results" in result.output
    assert "assert/index" in result.output
    assert "assert/location" in result.output
