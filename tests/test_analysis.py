from types import SimpleNamespace

import chess
import chess.engine
import pytest

from puzzles import analysis
from puzzles.analysis import EngineAnalyzer, EvaluationLine, parse_engine_limit, resolve_engine_path
from puzzles.config import Settings
from puzzles.errors import EngineUnavailable

FEN = "r1bqkb1r/pp2pppp/2n2n2/3N4/3P4/5N2/PPP1PPPP/R1BQKB1R b KQkq - 0 6"

INFOS = [
    {"depth": 1, "currmove": chess.Move.from_uci("f6d5")},
    {
        "depth": 10,
        "score": chess.engine.PovScore(chess.engine.Cp(-35), chess.BLACK),
        "pv": [chess.Move.from_uci("f6d5"), chess.Move.from_uci("e2e4")],
    },
    {
        "depth": 18,
        "score": chess.engine.PovScore(chess.engine.Mate(3), chess.BLACK),
        "pv": [chess.Move.from_uci("f6d5")],
    },
]


class FakeAnalysis:
    def __init__(self, infos):
        self.infos = infos

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def __iter__(self):
        return iter(self.infos)


class FakeEngine:
    def __init__(self):
        self.calls = []
        self.quit_called = False

    def analysis(self, board, limit, multipv=None):
        self.calls.append((board.fen(), limit))
        return FakeAnalysis(INFOS)

    def play(self, board, limit):
        return SimpleNamespace(move=chess.Move.from_uci("f6d5"))

    def quit(self):
        self.quit_called = True


@pytest.fixture
def fake_engine(monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr(chess.engine.SimpleEngine, "popen_uci", lambda path: engine)
    return engine


@pytest.mark.parametrize(
    "text, expected",
    [
        ("depth 40", chess.engine.Limit(depth=40)),
        ("nodes 100000", chess.engine.Limit(nodes=100000)),
        ("time 2.5", chess.engine.Limit(time=2.5)),
        ("MATE 3", chess.engine.Limit(mate=3)),
    ],
)
def test_parse_engine_limit(text, expected):
    assert parse_engine_limit(text) == expected


@pytest.mark.parametrize("text", ["depth", "depth forty", "moves 10", "depth 1 2"])
def test_parse_engine_limit_rejects(text):
    with pytest.raises(ValueError):
        parse_engine_limit(text)


def test_evaluation_line_from_info():
    line = EvaluationLine.from_info(INFOS[1])
    # Scores are reported from White's point of view
    assert line == EvaluationLine(depth=10, score_cp=35, mate=None, pv=("f6d5", "e2e4"))
    assert line.best_move == "f6d5"

    mate = EvaluationLine.from_info(INFOS[2])
    assert mate.score_cp is None
    assert mate.mate == -3

    assert EvaluationLine.from_info(INFOS[0]) is None


def test_analyze_streams_lines(fake_engine):
    analyzer = EngineAnalyzer("stockfish", chess.engine.Limit(depth=18))
    lines = list(analyzer.analyze(FEN))

    assert [line.depth for line in lines] == [10, 18]
    assert fake_engine.calls == [(FEN, chess.engine.Limit(depth=18))]


def test_best_move_and_close(fake_engine):
    with EngineAnalyzer("stockfish") as analyzer:
        assert analyzer.best_move(FEN) == "f6d5"
    assert fake_engine.quit_called


def test_engine_fails_to_start(monkeypatch):
    def broken(path):
        raise FileNotFoundError(path)

    monkeypatch.setattr(chess.engine.SimpleEngine, "popen_uci", broken)
    analyzer = EngineAnalyzer("/no/such/engine")
    with pytest.raises(EngineUnavailable):
        list(analyzer.analyze(FEN))


def test_from_settings_without_engine(monkeypatch, tmp_path):
    monkeypatch.setattr(analysis, "resolve_engine_path", lambda settings: None)
    with pytest.raises(EngineUnavailable):
        EngineAnalyzer.from_settings(Settings(home_dir=tmp_path))


def test_from_settings_uses_limit(monkeypatch, tmp_path):
    monkeypatch.setattr(analysis, "resolve_engine_path", lambda settings: "/usr/bin/stockfish")
    analyzer = EngineAnalyzer.from_settings(Settings(home_dir=tmp_path, engine_limit="nodes 5000"))
    assert analyzer.path == "/usr/bin/stockfish"
    assert analyzer.limit == chess.engine.Limit(nodes=5000)


def test_resolve_configured_engine(tmp_path):
    engine = tmp_path / "my-engine"
    engine.write_text("")
    settings = Settings(home_dir=tmp_path, engine_path=str(engine))
    assert resolve_engine_path(settings) == str(engine)


def test_configured_engine_has_no_fallback(monkeypatch, tmp_path):
    monkeypatch.setattr(analysis.shutil, "which", lambda name: None)
    settings = Settings(home_dir=tmp_path, engine_path=str(tmp_path / "missing"))
    assert resolve_engine_path(settings) is None


def test_engine_found_in_install_dirs(monkeypatch, tmp_path):
    engine = tmp_path / "stockfish"
    engine.write_text("")
    engine.chmod(0o755)
    monkeypatch.setattr(analysis.shutil, "which", lambda name: None)
    monkeypatch.setattr(analysis, "ENGINE_DIRS", ("/nonexistent", str(tmp_path)))

    assert resolve_engine_path(Settings(home_dir=tmp_path)) == str(engine)
