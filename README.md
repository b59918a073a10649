# ostreext

Build-side helpers for bootable OSTree-based container images.

The package covers these pieces of turning a root filesystem into container
image layers:

- **Commit preparation** (`ostreext.commit`) – clean a root filesystem before
  it is committed: the contents of `run`, `tmp`, `var/tmp` and `var/cache` are
  removed (without crossing mount points), empty directories under `var` are
  pruned (`var/tmp` itself is kept), and files left in `var` are an error, or
  only reported in non-strict mode.
- **Kernel discovery** (`ostreext.bootabletree`) – find the single
  `usr/lib/modules/<version>` directory that holds a `vmlinuz` file.
- **Layer packing** (`ostreext.packing`) – split components (for example
  packages) into a bounded number of layers, grouping them by size and change
  frequency, or keep the layer layout of a previous build.
- **Chunking** (`ostreext.chunking`) – move the content objects owned by each
  component into named chunks, one per layer.
- **CLI helpers** (`ostreext.cliutil`) – size formatting, layer progress
  messages, table rows, `KEY=VALUE` label parsing and JSON output.

## Installation

```
pip install .
```

Python 3.10 or newer is required. There are no third-party runtime
dependencies.

## Command line

Installing the package provides the `ostree-ext` command. It has one
command:

```
ostree-ext container commit
```

This runs commit preparation in strict mode on `/` (a hidden `--root DIR`
option points it at another directory). Errors are printed as
`error: ...` and the command exits with status 1.

```
ostree-ext --help
ostree-ext container commit --help
```

## Library use

### Preparing a root filesystem

```python
from ostreext.commit import prepare_ostree_commit_in, prepare_ostree_commit_in_nonstrict

prepare_ostree_commit_in("/path/to/rootfs")            # ValueError if files remain in var
prepare_ostree_commit_in_nonstrict("/path/to/rootfs")  # only prints "Found file: var/..." to stderr
```

### Finding the kernel directory

```python
from ostreext.bootabletree import find_kernel_dir_fs

kdir = find_kernel_dir_fs("/path/to/rootfs")
# PurePosixPath('usr/lib/modules/5.12.8-32.aarch64'), or None
```

More than one directory holding a `vmlinuz` raises `ValueError`.

### Packing components into layers

```python
from ostreext.packing import ObjectSourceMeta, ObjectSourceMetaSized, basic_packing

components = [
    ObjectSourceMetaSized(
        meta=ObjectSourceMeta(
            identifier="bash-5.2.15-1",
            name="bash",
            srcid="bash",
            change_frequency=30,
        ),
        size=1_800_000,
    ),
    # ... in descending size order
]

bins = basic_packing(components, 64)
for layer in bins:
    print([c.meta.identifier for c in layer])
```

`basic_packing` needs at least four layers and raises `PackingError`
otherwise. When there are fewer components than layers, each gets a layer of
its own. The last bin is always left empty for components that appear in
later builds.

To keep the layout of a previous build, pass its image manifest as a mapping.
Each layer after the first carries the component names in its
`ostree.components` annotation, separated by commas:

```python
prior = {
    "layers": [
        {"annotations": {"ostree.components": "ostree_commit"}},
        {"annotations": {"ostree.components": "bash"}},
        {"annotations": {"ostree.components": ""}},
    ]
}
bins = basic_packing(components, 64, prior)
```

Components stay in their previous layers, removed ones are dropped and new
ones go into the last layer.

### Chunking content objects

```python
from ostreext.chunking import Chunk, Chunking, ObjectMetaSized
from ostreext.packing import ObjectSourceMeta

remainder = Chunk(
    content={"aa11": (4096, ["/usr/bin/bash"]), "bb22": (512, ["/etc/motd"])},
    size=4608,
)
metas = [
    ObjectSourceMeta("bash-5.2", "bash", "bash"),
    ObjectSourceMeta("setup-2.14", "setup", "setup"),
]
meta = ObjectMetaSized.from_file_sizes(
    {"aa11": "bash-5.2", "bb22": "setup-2.14"},
    metas,
    {"aa11": 4096, "bb22": 512},
)

chunking = Chunking(remainder=remainder)
chunking.process_mapping(meta, max_layers=8)
chunking.print()
chunks = chunking.take_chunks()
```

`process_mapping` uses 64 layers when `max_layers` is `None`, raises
`RuntimeError` when called a second time and `ValueError` when objects are
left unassigned. `Chunking.format()` returns the same summary that `print()`
writes.

## What the package does not do

The package works on plain directories and on data handed to it. It does not
open OSTree repositories, read commits, import or export tar archives, build,
push or pull container images, or keep an image store, and the command line
offers only `container commit`. Sizes and object ownership for chunking must
be supplied by the caller.

## Running the tests

```
pip install .[test]
pytest
```