import pytest

from project2prompt.core import Settings, TreeContext, build_tree, load_node


@pytest.fixture
def settings():
    """Settings with the animation delay disabled."""
    return Settings(slowdown_ms=0)


@pytest.fixture
def walk(settings):
    """Load and fully walk a directory, returning (root, ctx)."""

    async def _walk(path, custom=None):
        active = custom or settings
        root = await load_node(str(path), active)
        ctx = TreeContext()
        await build_tree(root, ctx, active)
        return root, ctx

    return _walk


@pytest.fixture
def sample_project(tmp_path):
    """a.txt ("hi"), an empty b/ and a node_modules/ that must be skipped."""
    (tmp_path / "a.txt").write_text("hi")
    (tmp_path / "b").mkdir()
    modules = tmp_path / "node_modules"
    modules.mkdir()
    (modules / "index.js").write_text("module.exports = {}\n" * 50)
    return tmp_path
