from __future__ import annotations

import os
from pathlib import Path

from .models import InitResult, dump_init_result
from .store import RecordExistsError, RecordNotFoundError, StoreError, decode_record


# Owner read/write, group read
FILE_MODE = 0o640


class FileInitStore:
    """
    Local-file persistence for `InitResult`.

    - `save()` writes the JSON record to `output_path`. The file is created
      exclusively with mode 0640; an existing file is never overwritten and
      raises `RecordExistsError`.
    - `load()` reads the record from `input_path`. Usually the same path as
      `output_path`, but a later run may point it at a copy elsewhere.
    """

    def __init__(self, output_path: os.PathLike[str] | str, input_path: os.PathLike[str] | str) -> None:
        self._output = Path(output_path)
        self._input = Path(input_path)

    @property
    def output_path(self) -> Path:
        return self._output

    @property
    def input_path(self) -> Path:
        return self._input

    def save(self, result: InitResult) -> None:
        payload = dump_init_result(result)
        try:
            self._output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            raise StoreError(f"Could not create directory for {self._output}: {ex}") from ex
        try:
            fd = os.open(self._output, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        except FileExistsError as ex:
            raise RecordExistsError(f"Refusing to overwrite {self._output}") from ex
        except OSError as ex:
            raise StoreError(f"Could not create {self._output}: {ex}") from ex

        # umask may have narrowed the mode passed to open()
        try:
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), FILE_MODE)
                f.write(payload)
        except OSError as ex:
            # Drop the partial record
            self._output.unlink(missing_ok=True)
            raise StoreError(f"Could not save the vault initialization data to {self._output}: {ex}") from ex

    def load(self) -> InitResult:
        try:
            data = self._input.read_bytes()
        except FileNotFoundError as ex:
            raise RecordNotFoundError(f"No init result at {self._input}") from ex
        except OSError as ex:
            raise StoreError(f"Could not read {self._input}: {ex}") from ex
        return decode_record(data, source=str(self._input))
