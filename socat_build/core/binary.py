"""
Binary reader — file facts handed to the reporter.

Responsibilities:
  - SHA-256, size and modification time of the built binary.
  - A human-readable binary-type descriptor derived from the ELF header
    (class, endianness, type, machine, static/dynamic, stripped), in the
    spirit of file(1).  Non-ELF files get a short generic descriptor.

This module does not execute the binary.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from socat_build.core.integrity import sha256_file

_MACHINES = {
    "EM_X86_64": "x86-64",
    "EM_386": "Intel 80386",
    "EM_AARCH64": "ARM aarch64",
    "EM_ARM": "ARM",
    "EM_RISCV": "RISC-V",
    "EM_PPC64": "64-bit PowerPC",
    "EM_S390": "IBM S/390",
    "EM_MIPS": "MIPS",
}


@dataclass(frozen=True)
class BinaryInfo:
    """Structural facts about a built binary."""

    path: str
    sha256: str
    size: int
    timestamp: str          # ISO-8601 UTC modification time
    binary_type: str
    is_elf: bool
    statically_linked: bool = False
    stripped: bool = False


def _describe_elf(elffile: ELFFile) -> tuple:
    e_type = elffile.header["e_type"]
    segment_types = {seg["p_type"] for seg in elffile.iter_segments()}
    has_interp = "PT_INTERP" in segment_types
    dynamic = has_interp or "PT_DYNAMIC" in segment_types
    stripped = elffile.get_section_by_name(".symtab") is None

    if e_type == "ET_EXEC":
        kind = "executable"
    elif e_type == "ET_DYN":
        kind = "pie executable" if has_interp else "shared object"
    elif e_type == "ET_REL":
        kind = "relocatable"
    else:
        kind = str(e_type)

    machine = elffile.header["e_machine"]
    parts = [
        f"ELF {elffile.elfclass}-bit {'LSB' if elffile.little_endian else 'MSB'} {kind}",
        _MACHINES.get(machine, str(machine).replace("EM_", "")),
        "dynamically linked" if dynamic else "statically linked",
        "stripped" if stripped else "not stripped",
    ]
    return ", ".join(parts), not dynamic, stripped


def describe_binary(path: Path) -> BinaryInfo:
    """
    Collect checksum, size, timestamp and type descriptor for *path*.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"Binary not found: {path}")

    stat = path.stat()
    timestamp = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()

    is_elf = False
    static = False
    stripped = False
    with open(path, "rb") as f:
        magic = f.read(4)
        f.seek(0)
        try:
            descriptor, static, stripped = _describe_elf(ELFFile(f))
            is_elf = True
        except ELFError:
            if magic[:2] == b"MZ":
                descriptor = "PE executable (Windows)"
            elif magic[:2] == b"#!":
                descriptor = "script text executable"
            else:
                descriptor = "data"

    return BinaryInfo(
        path=str(path),
        sha256=sha256_file(path),
        size=stat.st_size,
        timestamp=timestamp,
        binary_type=descriptor,
        is_elf=is_elf,
        statically_linked=static,
        stripped=stripped,
    )
