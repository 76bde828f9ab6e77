"""
Source enumeration and output root tests.
"""

import os
import sys

import pytest

from peerdrop.errors import PathTraversalError, TransferIOError
from peerdrop.file.storage import OutputRoot
from peerdrop.file.walker import iter_source_files, is_hidden

needs_symlinks = pytest.mark.skipif(sys.platform == 'win32', reason='symlinks need privileges on Windows')


async def collect(root):
    return [s async for s in iter_source_files(root)]


async def wire_paths(root):
    return [s.relative_path for s in await collect(root)]


class TestIterSourceFiles:
    """Tests for the send-side directory walk."""

    @pytest.mark.asyncio
    async def test_single_file_relative_to_parent(self, make_tree):
        root = make_tree({'deep/dir/report.pdf': b'%PDF'})

        sources = await collect(root / 'deep' / 'dir' / 'report.pdf')

        assert [s.relative_path for s in sources] == ['report.pdf']
        assert sources[0].path == root / 'deep' / 'dir' / 'report.pdf'

    @pytest.mark.asyncio
    async def test_depth_first_sorted(self, make_tree):
        root = make_tree({
            'b.txt': b'',
            'a/z.txt': b'',
            'a/m/n.txt': b'',
            'c/d.txt': b'',
            'a.txt': b'',
        })

        assert await wire_paths(root) == ['a/m/n.txt', 'a/z.txt', 'a.txt', 'b.txt', 'c/d.txt']

    @pytest.mark.asyncio
    async def test_hidden_entries_skipped(self, make_tree):
        root = make_tree({
            'keep.txt': b'1',
            '.DS_Store': b'2',
            '.git/config': b'3',
            '.git/objects/ab/cd': b'4',
            'sub/.hidden': b'5',
            'sub/visible.txt': b'6',
        })

        assert await wire_paths(root) == ['keep.txt', 'sub/visible.txt']

    @pytest.mark.asyncio
    async def test_directories_never_listed(self, make_tree, tmp_path):
        root = make_tree({'a.txt': b''})
        (root / 'empty' / 'nested').mkdir(parents=True)

        assert await wire_paths(root) == ['a.txt']

    @pytest.mark.asyncio
    async def test_hidden_root_directory_is_walked(self, make_tree):
        root = make_tree({'settings.json': b'{}'}, root_name='.config')
        assert await wire_paths(root) == ['settings.json']

    @pytest.mark.asyncio
    async def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await collect(tmp_path / 'nope')

    @needs_symlinks
    @pytest.mark.asyncio
    async def test_symlinked_directory_not_followed(self, make_tree, tmp_path):
        outside = tmp_path / 'outside'
        outside.mkdir()
        (outside / 'secret.txt').write_bytes(b'x')
        root = make_tree({'a.txt': b''})
        os.symlink(outside, root / 'link', target_is_directory=True)

        assert await wire_paths(root) == ['a.txt']

    @needs_symlinks
    @pytest.mark.asyncio
    async def test_symlinked_file_is_sent(self, make_tree, tmp_path):
        target = tmp_path / 'target.txt'
        target.write_bytes(b'data')
        root = make_tree({})
        os.symlink(target, root / 'link.txt')

        assert await wire_paths(root) == ['link.txt']

    @needs_symlinks
    @pytest.mark.asyncio
    async def test_dangling_symlink_aborts(self, make_tree, tmp_path):
        root = make_tree({'a.txt': b'a', 'c.txt': b'c'})
        os.symlink(tmp_path / 'gone.txt', root / 'b.txt')

        seen = []
        with pytest.raises(FileNotFoundError):
            async for source in iter_source_files(root):
                seen.append(source.relative_path)

        assert seen == ['a.txt']

    @needs_symlinks
    @pytest.mark.asyncio
    async def test_hidden_dangling_symlink_ignored(self, make_tree, tmp_path):
        root = make_tree({'a.txt': b'a'})
        os.symlink(tmp_path / 'gone', root / '.lock')

        assert await wire_paths(root) == ['a.txt']

    def test_is_hidden(self):
        assert is_hidden('.git')
        assert not is_hidden('git')
        assert not is_hidden('a.b')


class TestOutputRoot:
    """Tests for destination resolution."""

    def test_resolve_nested(self, tmp_path):
        root = OutputRoot(tmp_path)
        assert root.resolve('sub/dir/f.txt') == tmp_path.resolve() / 'sub' / 'dir' / 'f.txt'

    def test_inner_dotdot_allowed(self, tmp_path):
        root = OutputRoot(tmp_path)
        assert root.resolve('a/../b.txt') == tmp_path.resolve() / 'b.txt'

    @pytest.mark.parametrize('path', ['..', '../x', 'a/../../x', '/etc/passwd', '.', 'a/..', 'a\x00b.txt'])
    def test_escapes_rejected(self, tmp_path, path):
        with pytest.raises(PathTraversalError):
            OutputRoot(tmp_path / 'out').resolve(path)

    @needs_symlinks
    def test_symlink_out_of_root_rejected(self, tmp_path):
        out = tmp_path / 'out'
        out.mkdir()
        os.symlink(tmp_path, out / 'up', target_is_directory=True)

        with pytest.raises(PathTraversalError):
            OutputRoot(out).resolve('up/escaped.txt')

    @pytest.mark.asyncio
    async def test_open_for_write_creates_parents(self, tmp_path):
        root = OutputRoot(tmp_path / 'out')
        await root.ensure()

        async with root.open_for_write('x/y/z.bin') as f:
            await f.write(b'abc')

        assert (tmp_path / 'out' / 'x' / 'y' / 'z.bin').read_bytes() == b'abc'

    @pytest.mark.asyncio
    async def test_open_for_write_closes_on_error(self, tmp_path):
        root = OutputRoot(tmp_path / 'out')
        await root.ensure()

        with pytest.raises(TransferIOError):
            async with root.open_for_write('partial.bin') as f:
                await f.write(b'half')
                raise TransferIOError('connection dropped')

        assert f.closed
        assert (tmp_path / 'out' / 'partial.bin').read_bytes() == b'half'

    @pytest.mark.asyncio
    async def test_open_for_write_into_file_parent(self, tmp_path):
        root = OutputRoot(tmp_path / 'out')
        await root.ensure()
        (tmp_path / 'out' / 'blocker').write_bytes(b'')

        with pytest.raises(TransferIOError):
            async with root.open_for_write('blocker/inner.txt'):
                pass
