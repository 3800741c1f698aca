import pytest

from hlswatch.filters import PathFilter


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/src/a.mp4", True),
        ("/src/A.MP4", True),
        ("/src/clip.Mp4", True),
        ("/src/a.mov", False),
        ("/src/a.mp4.part", False),
        ("/src/mp4", False),
        ("/src/.mp4/notes.txt", False),
    ],
)
def test_default_filter_matches_mp4_only(path, expected):
    assert PathFilter().is_concerned(path) is expected


def test_extensions_are_normalized():
    path_filter = PathFilter(["MKV", ".Mp4"])

    assert path_filter.extensions == (".mkv", ".mp4")
    assert path_filter("/x/movie.mkv")
    assert not path_filter("/x/movie.avi")
