"""Executable builder capability.

:class:`PythonExecutable` collects everything needed to produce a standalone
executable: the distribution it embeds, target triples, resource policy,
interpreter configuration and the resources to package. Producing the binary
itself is the job of the link/embed pipeline that consumes this object.
"""

from dataclasses import dataclass, field
import logging

from distconfig.config import EmbeddedPythonConfig
from distconfig.environment import ConfigEnvironment, Param, ScriptFunction, ScriptType
from distconfig.errors import (
    EXECUTABLE_BUILD_ERROR,
    InternalInvariantViolation,
    OperationError,
)
from distconfig.resources import (
    ExtensionModule,
    ExtensionModuleFilter,
    PackageResource,
    Resource,
    ResourcesPolicy,
    ResourcesPolicyKind,
    SourceModule,
)
from distconfig.values import required_type_arg, required_type_list_arg

RESOURCE_TYPE_NAMES: tuple[str, ...] = (
    "PythonSourceModule",
    "PythonExtensionModule",
    "PythonPackageResource",
)


@dataclass
class PythonExecutable:
    """An executable being assembled from a distribution."""

    name: str
    host_triple: str
    target_triple: str
    resources_policy: ResourcesPolicy
    config: EmbeddedPythonConfig
    extension_module_filter: ExtensionModuleFilter
    preferred_extension_module_variants: dict[str, str] | None
    include_sources: bool
    include_resources: bool
    include_test: bool
    resources: list[Resource] = field(default_factory=list)

    @property
    def source_modules(self) -> list[SourceModule]:
        return [r for r in self.resources if isinstance(r, SourceModule)]

    @property
    def extension_modules(self) -> list[ExtensionModule]:
        return [r for r in self.resources if isinstance(r, ExtensionModule)]

    @property
    def package_resources(self) -> list[PackageResource]:
        return [r for r in self.resources if isinstance(r, PackageResource)]

    def check_resource(self, resource: Resource) -> None:
        """Check that the resources policy can accommodate a resource.

        :param resource: Resource to check.
        :raises OperationError: If the policy cannot accommodate the resource.
        """

        if isinstance(resource, ExtensionModule) and resource.shared_library is not None:
            kind: ResourcesPolicyKind = self.resources_policy.kind
            if kind == ResourcesPolicyKind.IN_MEMORY_ONLY:
                raise OperationError(
                    f"extension module {resource.name} requires a shared library, "
                    f"which cannot be loaded from memory under resources policy {self.resources_policy}",
                    code=EXECUTABLE_BUILD_ERROR,
                )
            if kind not in (
                ResourcesPolicyKind.FILESYSTEM_RELATIVE_ONLY,
                ResourcesPolicyKind.PREFER_IN_MEMORY_FALLBACK_FILESYSTEM_RELATIVE,
            ):
                raise InternalInvariantViolation(f"unhandled resources policy {kind!r}")

    def add_resource(self, resource: Resource, *, logger: logging.Logger | None = None) -> None:
        """Add a resource, honoring the resources policy.

        :param resource: Resource to add.
        :param logger: Optional logger for debug output.
        :raises OperationError: If the policy cannot accommodate the resource.
        """

        self.check_resource(resource)
        if logger is not None and logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"distconfig: {self.name}: adding {type(resource).__name__} {_resource_name(resource)}")
        self.resources.append(resource)

    def add_python_resource(self, env: ConfigEnvironment, resource: object) -> None:
        """PythonExecutable.add_python_resource(resource)"""

        value: object = required_type_arg("resource", RESOURCE_TYPE_NAMES, resource)
        self.add_resource(value, logger=env.context.logger)

    def add_python_resources(self, env: ConfigEnvironment, resources: object) -> None:
        """PythonExecutable.add_python_resources(resources)

        Nothing is added unless every resource is accepted.
        """

        values: list[object] = required_type_list_arg("resources", RESOURCE_TYPE_NAMES, resources)
        for value in values:
            self.check_resource(value)
        for value in values:
            self.add_resource(value, logger=env.context.logger)

    def __repr__(self) -> str:
        return f"PythonExecutable<{self.name}>"


def _resource_name(resource: Resource) -> str:
    if isinstance(resource, PackageResource):
        return f"{resource.leaf_package}:{resource.relative_name}"
    return resource.name


def register_executable_module(env: ConfigEnvironment) -> None:
    env.register_type(
        ScriptType(
            name="PythonExecutable",
            cls=PythonExecutable,
            methods=(
                ScriptFunction(
                    name="add_python_resource",
                    params=(Param("resource"),),
                    handler=PythonExecutable.add_python_resource,
                ),
                ScriptFunction(
                    name="add_python_resources",
                    params=(Param("resources"),),
                    handler=PythonExecutable.add_python_resources,
                ),
            ),
            attributes=("name", "host_triple", "target_triple", "include_sources", "include_resources", "include_test"),
        )
    )
