"""
sugarcube Workers
Per-file parallel batch runner built on pykka actors. Each actor owns its
own preprocessor; files are handed out round-robin and results are
collected in input order
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field
import uuid

import pykka

from error_handling import IterationLimitExceeded, has_errors
from parsing import create_parser
from preprocess import Dialect, FeatureFlags, PreprocessResult


PREPROCESS = "preprocess"
CHECK = "check"


@dataclass
class FileOutcome:
  """What happened to one input file"""
  path: str
  result: Optional[PreprocessResult] = None
  diagnostics: List[Dict] = field(default_factory=list)
  error: Optional[str] = None

  @property
  def ok(self) -> bool:
    return self.error is None and not has_errors(self.diagnostics)


class WorkerRegistry:
  """Actors started for one batch"""

  def __init__(self):
    self.actors: Dict[str, pykka.ActorRef] = {}

  def register(self, actor_id: str, actor_ref: pykka.ActorRef):
    """Register an actor"""
    self.actors[actor_id] = actor_ref

  def refs(self) -> List[pykka.ActorRef]:
    return list(self.actors.values())

  def terminate_all(self):
    """Terminate all actors"""
    for actor_ref in self.actors.values():
      actor_ref.stop()
    self.actors.clear()


def run_file(parser, command: str, path: str) -> FileOutcome:
  """Run one command over one file with the given parser"""
  try:
    with open(path, 'r', encoding='utf-8') as f:
      source = f.read()
  except (OSError, UnicodeDecodeError) as e:
    return FileOutcome(path, error=f"Cannot read {path}: {e}")

  if command == CHECK:
    return FileOutcome(path, diagnostics=parser.check_string(source, path))

  try:
    result = parser.preprocessor.preprocess_string(source, path)
  except IterationLimitExceeded as e:
    return FileOutcome(path, diagnostics=[e.diagnostic])
  return FileOutcome(path, result=result, diagnostics=list(result.diagnostics))


class PreprocessWorker(pykka.ThreadingActor):
  """Actor that preprocesses or checks the files it is sent"""

  def __init__(self, worker_id: str, flags: FeatureFlags, dialect: Optional[Dialect], debug: bool = False):
    super().__init__()
    self.worker_id = worker_id
    self.parser = create_parser(flags, dialect, debug)

  def on_receive(self, message):
    """Handle a {'command': ..., 'path': ...} message"""
    return run_file(self.parser, message['command'], message['path'])


def process_files(
    paths: List[str],
    command: str = PREPROCESS,
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None,
    jobs: int = 1,
    debug: bool = False
) -> List[FileOutcome]:
  """
  Run `command` over every path, using up to `jobs` actors

  Args:
    paths: Input files
    command: PREPROCESS or CHECK
    flags: Feature flags shared by every file
    dialect: Fixed dialect, or None to pick it from each file name
    jobs: Maximum number of worker actors
    debug: Print pass traces

  Returns:
    One FileOutcome per path, in input order
  """
  flags = flags or FeatureFlags()
  if jobs <= 1 or len(paths) <= 1:
    parser = create_parser(flags, dialect, debug)
    return [run_file(parser, command, path) for path in paths]

  registry = WorkerRegistry()
  try:
    for _ in range(min(jobs, len(paths))):
      worker_id = str(uuid.uuid4())
      registry.register(worker_id, PreprocessWorker.start(worker_id, flags, dialect, debug))
    refs = registry.refs()
    futures = [
        refs[i % len(refs)].ask({'command': command, 'path': path}, block=False)
        for i, path in enumerate(paths)
    ]
    return [future.get() for future in futures]
  finally:
    registry.terminate_all()


def preprocess_files(paths: List[str], flags=None, dialect=None, jobs: int = 1, debug: bool = False) -> List[FileOutcome]:
  return process_files(paths, PREPROCESS, flags, dialect, jobs, debug)


def check_files(paths: List[str], flags=None, dialect=None, jobs: int = 1, debug: bool = False) -> List[FileOutcome]:
  return process_files(paths, CHECK, flags, dialect, jobs, debug)
