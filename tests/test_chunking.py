import pytest

from ostreext.chunking import Chunk, Chunking, ObjectMetaSized
from ostreext.packing import (
    COMPONENT_SEPARATOR,
    CONTENT_ANNOTATION,
    ObjectSourceMeta,
    PackingError,
)


def _meta(n, freq=10):
    return ObjectSourceMeta(
        identifier=f"pkg{n}.0", name=f"pkg{n}", srcid=f"srcpkg{n}", change_frequency=freq
    )


def _setup(count, objects_per=2, size=100):
    mapping = {}
    file_sizes = {}
    remainder = Chunk()
    metas = []
    for n in range(1, count + 1):
        metas.append(_meta(n))
        for k in range(objects_per):
            checksum = f"{n:02x}{k:062x}"
            mapping[checksum] = f"pkg{n}.0"
            file_sizes[checksum] = size * n
            remainder.content[checksum] = (size * n, [f"/usr/lib/pkg{n}/f{k}"])
            remainder.size += size * n
    meta = ObjectMetaSized.from_file_sizes(mapping, metas, file_sizes)
    return meta, Chunking(remainder=remainder)


def _manifest(layers):
    return {
        "layers": [
            {"annotations": {CONTENT_ANNOTATION: COMPONENT_SEPARATOR.join(names)}}
            for names in [["ostree_commit"]] + layers
        ]
    }


def test_from_file_sizes_sums_and_sorts():
    meta, _ = _setup(3)
    assert [s.meta.identifier for s in meta.sizes] == ["pkg3.0", "pkg2.0", "pkg1.0"]
    assert [s.size for s in meta.sizes] == [600, 400, 200]
    assert len(meta.map) == 6


def test_from_file_sizes_missing_meta():
    with pytest.raises(KeyError):
        ObjectMetaSized.from_file_sizes({"aa": "nosuch"}, [_meta(1)], {"aa": 1})


def test_move_obj():
    src = Chunk(content={"a": (10, ["/x"]), "b": (5, ["/y"])}, size=15)
    dest = Chunk(name="dest")
    assert src.move_obj(dest, "a") is True
    assert src.size == 5 and dest.size == 10
    assert dest.content == {"a": (10, ["/x"])}
    assert src.move_obj(dest, "a") is False
    assert dest.size == 10


def test_process_mapping_few_components():
    meta, chunking = _setup(3)
    total = chunking.remainder.size
    chunking.process_mapping(meta)
    assert chunking.max == 64
    names = [c.name for c in chunking.chunks]
    assert names == ["pkg3.0", "pkg2.0", "pkg1.0", "Reserved for new packages"]
    assert chunking.chunks[0].packages == ["pkg3"]
    assert chunking.remainder.content == {}
    assert chunking.remainder.size == 0
    assert sum(c.size for c in chunking.chunks) == total
    assert chunking.n_provided_components == 3
    assert chunking.n_sized_components == 3


def test_process_mapping_twice_fails():
    meta, chunking = _setup(2)
    chunking.process_mapping(meta)
    with pytest.raises(RuntimeError):
        chunking.process_mapping(meta)


def test_process_mapping_too_few_layers():
    meta, chunking = _setup(2)
    with pytest.raises(PackingError):
        chunking.process_mapping(meta, max_layers=1)


def test_process_mapping_zero_layers():
    meta, chunking = _setup(2)
    with pytest.raises(ValueError):
        chunking.process_mapping(meta, max_layers=0)


def test_no_remaining_layers_does_nothing():
    meta, chunking = _setup(2)
    chunking.chunks = [Chunk(name=str(i)) for i in range(4)]
    chunking.process_mapping(meta, max_layers=4)
    assert len(chunking.chunks) == 4
    assert chunking.n_provided_components == 0
    assert len(chunking.remainder.content) == 4


def test_names_with_prior_build():
    meta, chunking = _setup(3)
    prior = _manifest([["pkg1", "pkg2"], ["pkg3"], [""]])
    chunking.process_mapping(meta, max_layers=6, prior_build=prior)
    names = [c.name for c in chunking.chunks]
    assert names == ["pkg1.0 and pkg2.0", "pkg3.0", "Reserved for new packages"]
    assert chunking.chunks[0].packages == ["pkg1", "pkg2"]
    assert len(chunking.chunks[0].content) == 4


def test_many_components_name():
    meta, chunking = _setup(6, objects_per=1)
    prior = _manifest([[f"pkg{n}" for n in range(1, 7)], [""]])
    chunking.process_mapping(meta, max_layers=6, prior_build=prior)
    assert chunking.chunks[0].name == "6 components"
    assert len(chunking.chunks[0].packages) == 6


def test_unassigned_objects_raise():
    meta, chunking = _setup(2)
    chunking.remainder.content["ff" * 32] = (1, ["/etc/stray"])
    with pytest.raises(ValueError):
        chunking.process_mapping(meta)


def test_take_chunks():
    meta, chunking = _setup(2)
    chunking.process_mapping(meta)
    chunks = chunking.take_chunks()
    assert len(chunks) == 3
    assert chunking.chunks == []


def test_format():
    meta, chunking = _setup(1)
    chunking.metadata_size = 500
    text = chunking.format()
    assert text.splitlines()[0] == "Metadata: 500 bytes"
    assert "Remainder:" in text
    chunking.process_mapping(meta)
    lines = chunking.format().splitlines()
    assert lines[1] == "Components: provided=1 sized=1"
    assert lines[2] == 'Chunk 0: "pkg1.0": objects:2 size:200 bytes'
    assert not any(line.startswith("Remainder") for line in lines)


def test_print(capsys):
    _, chunking = _setup(1)
    chunking.print()
    out = capsys.readouterr().out
    assert out == chunking.format() + "\n"