from __future__ import annotations

import time
import zipfile
from pathlib import Path
from typing import Iterable, Optional


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
    label: str = "",
    extra_paths: Optional[Iterable[str]] = None,
) -> Path:
    """
    Zip up the log, the failure artifacts under `debug_dir` and any extra files (e.g. the login screenshot).

    Never includes the result JSON, storage state or `.env`; those hold live session secrets.
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    safe_label = "".join(c if c.isalnum() or c in "-_" else "_" for c in (label or "").strip().lower())
    label_part = f"_{safe_label}" if safe_label else ""
    out_path = out_root / f"debug_bundle{label_part}_{stamp}.zip"

    def _add_file(z: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
        try:
            if file_path.is_file():
                z.write(file_path, arcname=arcname)
        except OSError:
            # file vanished between listing and zipping
            return

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if log_file:
            log = Path(log_file)
            _add_file(z, log, arcname=log.name)

        dbg = Path(debug_dir) if debug_dir else None
        if dbg is not None and dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if p.is_file() and p.suffix != ".zip":
                    _add_file(z, p, arcname=str(Path("debug") / p.relative_to(dbg)))

        for raw in extra_paths or ():
            p = Path(raw)
            if p.is_file():
                _add_file(z, p, arcname=str(Path("extra") / p.name))

    return out_path
