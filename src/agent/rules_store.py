"""
src/agent/rules_store.py

Purpose: Persist operator-managed Suricata rules in a single flat file
Context: The custom rules file is read by Suricata on (re)load and edited
         by the control API. One rule per line; comment lines ('#') and
         blank lines are kept as-is when rules are deleted.

Concurrency:
- A single lock serializes every mutation and every full-file read, so an
  append can never interleave with a delete rewrite.
- Methods are blocking; async callers run them in a worker thread.
"""

import os
import shutil
import logging
import threading
from pathlib import Path
from typing import List

from agent_errors import InternalServerError, NotFoundError, RuleValidationError
from api_models import Rule
from rule_syntax import generate_rule_id, validate_rule_syntax

logger = logging.getLogger(__name__)

# Files larger than this are copied to <name>.bak before an append
BACKUP_THRESHOLD_BYTES = 1_000_000


def _is_rule_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith('#')


class RulesStore:
    """Append / list / lookup / delete rules in the custom rules file"""

    def __init__(self, file_path):
        self.file_path = Path(file_path)
        self._lock = threading.Lock()

    @property
    def backup_path(self) -> Path:
        return self.file_path.with_name(self.file_path.name + '.bak')

    def append(self, rule_content: str) -> str:
        """
        Validate a rule and append it to the rules file

        Args:
            rule_content: Rule line (a trailing newline is added if missing)

        Returns:
            ID of the appended rule

        Raises:
            RuleValidationError: If the rule fails the syntax check or spans lines
            InternalServerError: On directory creation or write failure
        """
        validate_rule_syntax(rule_content)
        if '\n' in rule_content.rstrip('\r\n'):
            raise RuleValidationError("Rule must be a single line")

        with self._lock:
            parent = self.file_path.parent
            if not parent.exists():
                try:
                    parent.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    logger.error(f"Failed to create directory: {e}")
                    raise InternalServerError(f"Failed to create directory: {e}")

            self._backup_if_large()

            data = rule_content if rule_content.endswith('\n') else rule_content + '\n'
            if self._needs_leading_newline():
                data = '\n' + data

            try:
                f = open(self.file_path, 'a', encoding='utf-8', newline='')
            except OSError as e:
                logger.error(f"Failed to open file: {e}")
                raise InternalServerError(f"Failed to open file: {e}")

            with f:
                try:
                    f.write(data)
                    f.flush()
                except OSError as e:
                    logger.error(f"Failed to write to file: {e}")
                    raise InternalServerError(f"Failed to write to file: {e}")
                self._fsync(f)

        rule_id = generate_rule_id(rule_content.strip())
        logger.info(f"Rule added successfully: {rule_content.strip()} with ID: {rule_id}")
        return rule_id

    def list(self) -> List[Rule]:
        """Return every rule in file order (comments and blanks skipped)"""
        with self._lock:
            if not self.file_path.exists():
                return []
            content = self._read()

        return [Rule.from_line(line) for line in content.split('\n') if _is_rule_line(line)]

    def get(self, rule_id: str) -> Rule:
        """
        Look up a rule by its derived ID

        Raises:
            NotFoundError: If the file or the rule does not exist
        """
        with self._lock:
            if not self.file_path.exists():
                raise NotFoundError("Rules file does not exist")
            content = self._read()

        for line in content.split('\n'):
            if _is_rule_line(line) and generate_rule_id(line.strip()) == rule_id:
                return Rule.from_line(line)

        raise NotFoundError(f"Rule with ID '{rule_id}' not found")

    def delete(self, rule_id: str) -> int:
        """
        Remove every rule line whose ID matches

        Identical duplicate lines share an ID, so they are all removed.

        Returns:
            Number of lines removed

        Raises:
            NotFoundError: If the file or the rule does not exist
            InternalServerError: On read/write failure
        """
        with self._lock:
            if not self.file_path.exists():
                raise NotFoundError("Rules file does not exist")

            lines = self._read().split('\n')
            kept = [
                line for line in lines
                if not (_is_rule_line(line) and generate_rule_id(line.strip()) == rule_id)
            ]
            removed = len(lines) - len(kept)

            if removed == 0:
                raise NotFoundError(f"Rule with ID '{rule_id}' not found")

            data = '\n'.join(kept)
            if data and not data.endswith('\n'):
                data += '\n'

            try:
                f = open(self.file_path, 'w', encoding='utf-8', newline='')
            except OSError as e:
                logger.error(f"Failed to create rules file: {e}")
                raise InternalServerError(f"Failed to create rules file: {e}")

            with f:
                try:
                    f.write(data)
                    f.flush()
                except OSError as e:
                    logger.error(f"Failed to write updated rules: {e}")
                    raise InternalServerError(f"Failed to write updated rules: {e}")
                self._fsync(f)

        logger.info(f"Rule with ID {rule_id} removed successfully ({removed} line(s))")
        return removed

    def _read(self) -> str:
        try:
            with open(self.file_path, 'r', encoding='utf-8', newline='') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read rules file: {e}")
            raise InternalServerError(f"Failed to read rules file: {e}")

    def _backup_if_large(self):
        try:
            size = self.file_path.stat().st_size
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error(f"Failed to stat rules file for backup: {e}")
            return

        if size <= BACKUP_THRESHOLD_BYTES:
            return

        try:
            shutil.copyfile(self.file_path, self.backup_path)
            logger.info(f"Created backup of rules file at {self.backup_path}")
        except OSError as e:
            # Not fatal: the append still goes ahead
            logger.error(f"Failed to create backup: {e}")

    def _needs_leading_newline(self) -> bool:
        """True if the file is non-empty and its last byte is not a newline"""
        try:
            with open(self.file_path, 'rb') as f:
                f.seek(0, os.SEEK_END)
                if f.tell() == 0:
                    return False
                f.seek(-1, os.SEEK_END)
                return f.read(1) != b'\n'
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not inspect rules file tail: {e}")
            return False

    @staticmethod
    def _fsync(f):
        try:
            os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Failed to sync file to disk: {e}")
