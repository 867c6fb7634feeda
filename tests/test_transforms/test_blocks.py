"""Tests for HTML build blocks."""

import subprocess

import pytest

from assetpipe.assets import Asset
from assetpipe.exceptions import OptionsError
from assetpipe.transforms.blocks import BlocksOptions, BuildBlocks

INDEX = """<html>
<head>
  <!-- build:css styles/app.css -->
  <link rel="stylesheet" href="styles/main.css">
  <link rel="stylesheet" href="styles/theme.css">
  <!-- endbuild -->
</head>
<body>
  <!-- build:js scripts/app.js -->
  <script src="scripts/app.js"></script>
  <script src="/scripts/views.js"></script>
  <!-- endbuild -->
</body>
</html>
"""


@pytest.fixture
def build_dir(tmp_path):
    files = {
        'build/index.html': INDEX,
        'build/styles/main.css': 'body {}',
        'build/styles/theme.css': 'h1 {}',
        'build/scripts/app.js': 'var app',
        'build/scripts/views.js': 'var views',
    }
    for path, content in files.items():
        full = tmp_path / path
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content)
    return tmp_path


def run_blocks(base, **options):
    fn = BuildBlocks(BlocksOptions.from_dict('blocks', options), base)
    return fn([Asset.read(base, 'build/index.html')])


class TestBuildBlocks:
    """Tests for the blocks transform."""

    def test_outputs(self, build_dir):
        outputs = run_blocks(build_dir)
        assert sorted(outputs) == ['index.html', 'scripts/app.js', 'styles/app.css']
        assert outputs['scripts/app.js'] == b'var app;\nvar views'
        assert outputs['styles/app.css'] == b'body {}\nh1 {}'

    def test_markup_rewritten(self, build_dir):
        html = run_blocks(build_dir)['index.html'].decode()
        assert html == (
            '<html>\n<head>\n'
            '  <link rel="stylesheet" href="styles/app.css">\n'
            '</head>\n<body>\n'
            '  <script src="scripts/app.js"></script>\n'
            '</body>\n</html>\n'
        )

    def test_process_command(self, build_dir):
        outputs = run_blocks(build_dir, process={'js': 'tr a-z A-Z'})
        assert outputs['scripts/app.js'] == b'VAR APP;\nVAR VIEWS'
        assert outputs['styles/app.css'] == b'body {}\nh1 {}'

    def test_process_failure(self, build_dir):
        with pytest.raises(subprocess.CalledProcessError):
            run_blocks(build_dir, process={'css': 'exit 1'})

    def test_missing_reference(self, build_dir):
        (build_dir / 'build/scripts/views.js').unlink()
        with pytest.raises(OSError):
            run_blocks(build_dir)

    def test_unsupported_block_type(self, build_dir):
        (build_dir / 'build/index.html').write_text(
            '<!-- build:remove x -->\n<p>debug</p>\n<!-- endbuild -->\n')
        with pytest.raises(ValueError, match="unsupported build block type 'remove'"):
            run_blocks(build_dir)

    def test_markup_without_blocks(self, build_dir):
        (build_dir / 'build/index.html').write_text('<p>plain</p>\n')
        assert run_blocks(build_dir) == {'index.html': b'<p>plain</p>\n'}

    def test_unknown_process_type(self):
        with pytest.raises(OptionsError, match="unknown block type 'html'"):
            BlocksOptions.from_dict('blocks', {'process': {'html': 'htmlmin'}})
