from __future__ import annotations

import os
import sys
import glob
import argparse
import json as _json
import threading
import concurrent.futures as _fut

from pathlib import Path
from typing import List, Iterable, Dict, Any, Optional

from ncmdump.constants import MAX_WORKERS
from ncmdump.reader import NcmReader, probe
from ncmdump.metadata import ArtworkExtractor
from ncmdump.payload import AudioFormat
from ncmdump.errors import NcmError


_print_lock = threading.Lock()


def _emit(msg: str, *, err: bool = False) -> None:
    # Workers print concurrently; keep lines whole.
    with _print_lock:
        print(msg, file=sys.stderr if err else sys.stdout, flush=True)


def _iter_inputs(patterns: Iterable[str]) -> Iterable[str]:
    """Yield regular files matching each glob pattern, once each, in pattern order.

    An existing file is taken literally even if its name contains glob
    characters (``Song [Live].ncm``). Duplicates are detected on the resolved
    path, so ``a.ncm`` and ``./a.ncm`` yield one entry.

    Args:
        patterns: Glob patterns or plain paths.
    """
    seen = set()
    for pattern in patterns:
        if os.path.isfile(pattern) or not glob.has_magic(pattern):
            matches = [pattern]
        else:
            matches = sorted(glob.glob(pattern))
        for p in matches:
            if not os.path.isfile(p):
                continue
            key = os.path.realpath(p)
            if key in seen:
                continue
            seen.add(key)
            yield p


def _output_path(src: str, outdir: Optional[str], ext: str) -> str:
    parent = outdir if outdir is not None else (os.path.dirname(src) or ".")
    return os.path.join(parent, Path(src).stem + "." + ext)


class _TargetClaims:
    """Output paths handed out during one run.

    Two inputs with the same stem written to one directory would otherwise
    overwrite each other; later claimants get ``name (1).ext``, ``name (2).ext``...
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._claimed = set()

    def claim(self, path: str) -> str:
        with self._lock:
            candidate = path
            root, ext = os.path.splitext(path)
            i = 1
            while os.path.realpath(candidate) in self._claimed:
                candidate = f"{root} ({i}){ext}"
                i += 1
            self._claimed.add(os.path.realpath(candidate))
            return candidate


def _make_progress(name: str, verbose: bool):
    if not verbose:
        return None
    state = {"last": -1}

    def _report(done: int, total: int) -> None:
        if total <= 0:
            return
        step = (done * 10) // total
        if step != state["last"]:
            state["last"] = step
            _emit(f" {done * 100.0 / total:6.2f}% dumping: {name}")

    return _report


def _describe(path: str, r: NcmReader) -> List[str]:
    m = r.metadata
    lines = [f"Container: {path}"]
    lines.append(f"  Title: {m.title or '-'}")
    lines.append(f"  Artists: {', '.join(m.artists) or '-'}")
    lines.append(f"  Album: {m.album or '-'}")
    lines.append(f"  Duration: {m.duration} ms")
    lines.append(f"  Bitrate: {m.bitrate}")
    lines.append(f"  Format: {m.format or '-'} (detected: {r.format_hint().extension or 'unknown'})")
    lines.append(f"  Music ID: {m.source_id or '-'}")
    lines.append(f"  CRC32: {r.crc32:08x}")
    if r.cover:
        lines.append(f"  Cover: {len(r.cover)} bytes ({ArtworkExtractor.mime_type(r.cover) or 'unknown type'})")
    else:
        lines.append("  Cover: none")
    lines.append(f"  Audio: {r.audio_length} bytes at offset {r.audio_offset}")
    return lines


def _dump_one(
    path: str,
    *,
    outdir: Optional[str],
    info_only: bool,
    write_cover: bool,
    verbose: bool,
    claims: Optional[_TargetClaims] = None,
) -> Dict[str, Any]:
    """Decode a single container; never raises for per-file problems."""

    res: Dict[str, Any] = {"path": path, "status": "unknown", "output": None, "cover": None, "warnings": []}
    try:
        if not probe(path):
            res["status"] = "skip"
            res["message"] = "not an NCM container"
            return res
        with NcmReader(path) as r:
            res["metadata"] = r.metadata.to_dict()
            if info_only:
                res["status"] = "ok"
                res["info"] = _describe(path, r)
                res["warnings"] = list(r.warnings)
                return res
            fmt = r.output_format()
            ext = fmt.extension
            if fmt is AudioFormat.UNKNOWN:
                ext = "bin"
                r.warnings.append("unrecognized audio format; writing .bin")
            target = _output_path(path, outdir, ext)
            if claims is not None:
                wanted, target = target, claims.claim(target)
                if target != wanted:
                    r.warnings.append(f"{wanted} already written in this run; using {target}")
            written = r.extract(target, progress=_make_progress(os.path.basename(path), verbose))
            res["output"] = target
            res["format"] = ext
            res["bytes"] = written
            if write_cover and r.cover:
                cover_ext = ArtworkExtractor.extension(r.cover) or "img"
                cover_path = os.path.splitext(target)[0] + "." + cover_ext
                with open(cover_path, "wb") as cf:
                    cf.write(r.cover)
                res["cover"] = cover_path
            res["warnings"] = list(r.warnings)
    except (NcmError, OSError, ValueError) as exc:
        res["status"] = "fail"
        res["message"] = str(exc)
        return res
    res["status"] = "ok"
    return res


def cmd_dump(
    patterns: List[str],
    *,
    output: Optional[str] = None,
    worker: int = 1,
    verbose: bool = False,
    write_cover: bool = False,
    info_only: bool = False,
    as_json: bool = False,
    quiet: bool = False,
) -> bool:
    """Decode many containers on a worker pool.

    Args:
        patterns: File paths or glob patterns.
        output: Output directory; defaults to each input's own directory.
        worker: Number of files processed in parallel (1..8).
        verbose: Print per-file progress.
        write_cover: Also write the embedded cover image next to each output.
        info_only: Print metadata only; do not decrypt audio.
        as_json: Print a JSON result summary.
        quiet: Limit outputs to the summary.

    Returns:
        True when no file failed, False otherwise.

    Raises:
        RuntimeError: If no files matched or the worker count is out of range.
    """
    if not 1 <= int(worker) <= MAX_WORKERS:
        raise RuntimeError(f"Worker count must be between 1 and {MAX_WORKERS}")
    paths = list(_iter_inputs(patterns))
    if not paths:
        raise RuntimeError("No file can be converted")
    if output is not None:
        os.makedirs(output, exist_ok=True)
    claims = _TargetClaims()

    def _runner(p: str) -> Dict[str, Any]:
        r = _dump_one(
            p,
            outdir=output,
            info_only=info_only,
            write_cover=write_cover,
            verbose=verbose and not quiet,
            claims=claims,
        )
        if not as_json and not quiet:
            _report(r)
        return r

    with _fut.ThreadPoolExecutor(max_workers=int(worker)) as ex:
        results = list(ex.map(_runner, paths))

    ok = sum(1 for r in results if r["status"] == "ok")
    skipped = sum(1 for r in results if r["status"] == "skip")
    failed = sum(1 for r in results if r["status"] == "fail")
    if as_json:
        print(_json.dumps({"results": results, "ok": ok, "skipped": skipped, "failed": failed}, ensure_ascii=False))
    else:
        if quiet:
            for r in results:
                if r["status"] == "fail":
                    _emit(f"Error: {r['path']}: {r.get('message', '')}", err=True)
        print(f"Summary: ok={ok} skipped={skipped} failed={failed}")
    return failed == 0


def _report(r: Dict[str, Any]) -> None:
    status = r["status"]
    if status == "fail":
        _emit(f"Error: {r['path']}: {r.get('message', '')}", err=True)
        return
    if status == "skip":
        _emit(f"    skipping: {r['path']} ({r.get('message', '')})")
        return
    if "info" in r:
        _emit("\n".join(r["info"]))
    else:
        _emit(f"     dumped: {r['path']} -> {r['output']}")
        if r.get("cover"):
            _emit(f"      cover: {r['cover']}")
    for w in r.get("warnings", []):
        _emit(f"Warning: {r['path']}: {w}", err=True)


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="ncmdump",
        description="Convert NCM containers to plain audio files",
        epilog="Outputs are named after the input file with the detected audio extension.",
    )
    ap.add_argument("files", nargs="+", metavar="FILES", help="Files or glob patterns to convert")
    ap.add_argument("-o", "--output", help="Output directory (default: next to each input file)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Print per-file progress")
    ap.add_argument(
        "-w",
        "--worker",
        type=int,
        default=1,
        help=f"Files processed in parallel, 1..{MAX_WORKERS} (default 1)",
    )
    ap.add_argument("--cover", action="store_true", help="Also write the embedded cover image")
    ap.add_argument("--info", action="store_true", help="Show container metadata without converting")
    ap.add_argument("--json", action="store_true", help="Emit JSON result summary")
    ap.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    args = ap.parse_args(argv)
    if not 1 <= args.worker <= MAX_WORKERS:
        ap.error(f"--worker must be between 1 and {MAX_WORKERS}")
    try:
        success = cmd_dump(
            args.files,
            output=args.output,
            worker=args.worker,
            verbose=args.verbose,
            write_cover=args.cover,
            info_only=args.info,
            as_json=args.json,
            quiet=args.quiet,
        )
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
