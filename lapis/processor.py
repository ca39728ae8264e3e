"""Runner of the post-install processors of Forge-family loaders. Processors are JAR
programs run in order with arguments referencing the installer data variables and
libraries, each one is run at most once: its success flag is saved with the descriptor
as soon as it completes.
"""

from pathlib import Path
import subprocess
import logging
import os

from .meta import VersionDescriptor, ProcessorStep
from .extract import read_manifest_main_class
from .error import NotFoundError, ProcessorError
from .util import calc_file_sha1, lib_path

from typing import TYPE_CHECKING, Optional, Callable, List, Any

if TYPE_CHECKING:
    from .standard import Config


__all__ = ["ProcessorRunner", "ProcessorStartEvent", "ProcessorDoneEvent"]

logger = logging.getLogger(__name__)


class ProcessorRunner:
    """Run the processors of a descriptor with the given Java executable. The save
    callback is called with the descriptor after each successful processor.
    """

    def __init__(self,
        config: "Config",
        desc: VersionDescriptor,
        java_path: Path, *,
        save: Optional[Callable[[VersionDescriptor], None]] = None
    ) -> None:
        self.config = config
        self.desc = desc
        self.java_path = java_path
        self.save = save

    def run(self, watcher: Any = None) -> int:
        """Run all pending client processors in order. On the first failure the
        remaining processors are abandoned, those already successful stay saved.

        :return: The number of processors actually executed.
        :raises NotFoundError: If the descriptor has no data variables or if the main
        class of a processor can't be found.
        :raises ProcessorError: If a processor fails.
        """

        processors = self.desc.processors
        if not processors:
            return 0

        if self.desc.data is None:
            raise NotFoundError("installer data")

        count = 0
        for index, step in enumerate(processors):

            if not step.is_client():
                logger.debug("Skipping server processor %s", step.jar)
                continue
            if step.success:
                logger.debug("Skipping already successful processor %s", step.jar)
                continue

            task = _step_task(step)
            if watcher is not None:
                watcher.handle(ProcessorStartEvent(index, step.jar, task))

            self._run_step(step)
            count += 1

            step.success = True
            if self.save is not None:
                self.save(self.desc)

            if watcher is not None:
                watcher.handle(ProcessorDoneEvent(index, step.jar, task))

        return count

    def _run_step(self, step: ProcessorStep) -> None:

        jar_file = self.library_file(step.jar)
        if not jar_file.is_file():
            raise NotFoundError(f"processor jar {step.jar}")

        # Required because we cannot use both -cp and -jar.
        main_class = read_manifest_main_class(jar_file)

        class_path: List[str] = [str(self.library_file(entry)) for entry in step.classpath]
        class_path.append(str(jar_file))

        args = [
            str(self.java_path),
            "-cp", os.pathsep.join(class_path),
            main_class,
            *(self.resolve_arg(arg) for arg in step.args)
        ]

        logger.debug("Running processor %s: %s", step.jar, args)

        completed = subprocess.run(args,
            cwd=self.config.context.main_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)

        if completed.returncode != 0:
            raise ProcessorError(step.jar, f"exit status {completed.returncode}",
                completed.stderr.decode(errors="replace"))

        # If there are sha1, check them.
        for output_arg, expected_arg in step.outputs.items():
            output_file = Path(self.resolve_arg(output_arg))
            expected_sha1 = self.resolve_arg(expected_arg)
            try:
                actual_sha1 = calc_file_sha1(output_file)
            except OSError as error:
                raise ProcessorError(step.jar, f"cannot read output '{output_file}': {error}")
            if actual_sha1 != expected_sha1:
                raise ProcessorError(step.jar, f"invalid sha1 for '{output_file}', got {actual_sha1}, expected {expected_sha1}")

    def library_file(self, coordinate: str) -> Path:
        """Return the absolute path of the library with the given coordinate.

        :raises ParseError: If the coordinate is malformed.
        """
        return (self.config.context.libraries_dir / lib_path(coordinate)).absolute()

    def resolve_arg(self, arg: str) -> str:
        """Resolve a processor argument: `{KEY}` is replaced by the client value of the
        data variable, and `[coordinate]` by the absolute path of the library. Other
        arguments are returned as-is.
        """

        if len(arg) >= 2 and arg[0] == "{" and arg[-1] == "}":
            var = None if self.desc.data is None else self.desc.data.get(arg[1:-1])
            if var is None:
                return arg
            arg = var.client

        if len(arg) >= 2 and arg[0] == "[" and arg[-1] == "]":
            return str(self.library_file(arg[1:-1]))
        elif len(arg) >= 2 and arg[0] == "'" and arg[-1] == "'":
            return arg[1:-1]

        return arg


class ProcessorStartEvent:
    """Event triggered when a processor starts.
    """
    __slots__ = "index", "jar", "task"
    def __init__(self, index: int, jar: str, task: str) -> None:
        self.index = index
        self.jar = jar
        self.task = task

class ProcessorDoneEvent:
    """Event triggered when a processor has successfully completed.
    """
    __slots__ = "index", "jar", "task"
    def __init__(self, index: int, jar: str, task: str) -> None:
        self.index = index
        self.jar = jar
        self.task = task


def _step_task(step: ProcessorStep) -> str:
    """Try to find the task name of a processor, just for information purpose.
    """
    if len(step.args) >= 2 and step.args[0] == "--task":
        return step.args[1].lower()
    artifact = step.jar.split(":")[1] if step.jar.count(":") >= 2 else step.jar
    return {
        "jarsplitter": "split_jar",
        "ForgeAutoRenamingTool": "forge_auto_renaming",
        "AutoRenamingTool": "auto_renaming",
        "binarypatcher": "patch_binary",
        "SpecialSource": "special_source_renaming",
    }.get(artifact, artifact)
