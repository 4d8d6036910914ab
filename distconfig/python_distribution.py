"""The ``PythonDistribution`` script type.

A :class:`PythonDistribution` handle names a distribution (flavor plus
location) without touching it. The first operation that needs the
distribution resolves it; the result is kept for the handle's lifetime and
shared by every later call. A failed resolution is not remembered, so the
next call tries again.

Every script-visible operation follows the same shape: validate arguments,
resolve, call one collaborator, return its records in collaborator order.
Collaborator exceptions are translated into the script-visible errors of
:mod:`distconfig.errors`.
"""

import logging
import pathlib
import threading

from distconfig import packaging_tool
from distconfig.bytecode import (
    BytecodeCompileError,
    BytecodeCompiler,
    BytecodeOptimizationLevel,
    CompileMode,
)
from distconfig.distribution import (
    DistributionError,
    DistributionFlavor,
    DistributionLocation,
    LocalDistributionLocation,
    StandaloneDistribution,
    UrlDistributionLocation,
    resolve_distribution,
)
from distconfig.environment import ConfigEnvironment, Param, ScriptFunction, ScriptType
from distconfig.errors import (
    BYTECODE_COMPILE_ERROR,
    EXECUTABLE_BUILD_ERROR,
    PACKAGE_ROOT_ERROR,
    PIP_INSTALL_ERROR,
    PYTHON_DISTRIBUTION,
    SETUP_PY_ERROR,
    UNKNOWN_DISTRIBUTION,
    VIRTUALENV_ERROR,
    OperationError,
    ResolutionError,
)
from distconfig.executable import PythonExecutable
from distconfig.packaging_tool import PackagingToolError
from distconfig.python_distributions import default_distribution_location
from distconfig.resources import (
    ExtensionModule,
    ExtensionModuleFilter,
    PackageResource,
    Resource,
    ResourcesPolicy,
    SourceModule,
)
from distconfig.values import (
    exclusive_args,
    optional_dict_arg,
    optional_list_arg,
    optional_str_arg,
    optional_type_arg,
    parse_enum_arg,
    required_bool_arg,
    required_list_arg,
    required_str_arg,
)


class PythonDistribution:
    """Script handle on a lazily resolved distribution."""

    def __init__(
        self,
        flavor: DistributionFlavor,
        location: DistributionLocation,
        dest_dir: pathlib.Path,
    ) -> None:
        self.flavor: DistributionFlavor = flavor
        self.location: DistributionLocation = location
        self.dest_dir: pathlib.Path = dest_dir
        self.distribution: StandaloneDistribution | None = None
        self._compiler: BytecodeCompiler | None = None
        self._resolve_lock: threading.Lock = threading.Lock()
        self._compiler_lock: threading.Lock = threading.Lock()

    def ensure_distribution_resolved(self, logger: logging.Logger) -> StandaloneDistribution:
        """Resolve the distribution unless that already succeeded.

        :param logger: Logger for progress output.
        :returns: The resolved distribution.
        :raises DistributionError: If resolution fails. Nothing is cached then.
        """

        with self._resolve_lock:
            if self.distribution is None:
                self.distribution = resolve_distribution(
                    flavor=self.flavor,
                    location=self.location,
                    dest_dir=self.dest_dir,
                    logger=logger,
                )
            return self.distribution

    def compile_bytecode(
        self,
        logger: logging.Logger,
        source: bytes,
        filename: str,
        optimize: BytecodeOptimizationLevel,
        mode: CompileMode,
    ) -> bytes:
        """Compile bytecode using this distribution.

        The compiler process is started on first use and kept for the
        lifetime of the handle.

        :raises ResolutionError: If the distribution cannot be resolved.
        :raises OperationError: If compilation fails.
        """

        dist: StandaloneDistribution = self._resolve(logger, label="compile_bytecode()")
        with self._compiler_lock:
            try:
                if self._compiler is None:
                    self._compiler = dist.create_bytecode_compiler(logger=logger)
                return self._compiler.compile(source, filename, optimize, mode)
            except BytecodeCompileError as e:
                raise OperationError(str(e), label="compile_bytecode()", code=BYTECODE_COMPILE_ERROR) from e

    def _resolve(self, logger: logging.Logger, *, label: str) -> StandaloneDistribution:
        try:
            return self.ensure_distribution_resolved(logger)
        except (DistributionError, OSError) as e:
            raise ResolutionError(f"unable to resolve distribution: {e}", label=label) from e

    def __repr__(self) -> str:
        return f"PythonDistribution<{self.location!r}>"

    def extension_modules(
        self,
        env: ConfigEnvironment,
        filter: object,
        preferred_variants: object,
    ) -> list[ExtensionModule]:
        """PythonDistribution.extension_modules(filter="all", preferred_variants=None)"""

        label: str = "extension_modules()"
        extension_filter: ExtensionModuleFilter = parse_enum_arg(
            "filter",
            ExtensionModuleFilter.parse,
            required_str_arg("filter", filter),
        )
        variants: dict[str, str] | None = optional_dict_arg(
            "preferred_variants", "string", "string", preferred_variants
        )

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)
        try:
            return dist.filter_extension_modules(extension_filter, variants, logger=logger)
        except DistributionError as e:
            raise OperationError(str(e), label=label, code=PYTHON_DISTRIBUTION) from e

    def source_modules(self, env: ConfigEnvironment) -> list[SourceModule]:
        """PythonDistribution.source_modules()"""

        label: str = "source_modules()"
        dist: StandaloneDistribution = self._resolve(env.context.logger, label=label)
        try:
            return dist.source_modules()
        except (DistributionError, OSError) as e:
            raise OperationError(str(e), label=label, code=PYTHON_DISTRIBUTION) from e

    def package_resources(self, env: ConfigEnvironment, include_test: object) -> list[PackageResource]:
        """PythonDistribution.package_resources(include_test=False)"""

        label: str = "package_resources()"
        include: bool = required_bool_arg("include_test", include_test)

        dist: StandaloneDistribution = self._resolve(env.context.logger, label=label)
        try:
            resources: list[PackageResource] = dist.resource_datas()
        except (DistributionError, OSError) as e:
            raise OperationError(str(e), label=label, code=PYTHON_DISTRIBUTION) from e

        if include is True:
            return resources
        return [r for r in resources if dist.is_test_package(r.leaf_package) is False]

    def pip_install(self, env: ConfigEnvironment, args: object, extra_envs: object) -> list[Resource]:
        """PythonDistribution.pip_install(args, extra_envs=None)"""

        label: str = "pip_install()"
        pip_args: list[str] = required_list_arg("args", "string", args)
        envs: dict[str, str] | None = optional_dict_arg("extra_envs", "string", "string", extra_envs)

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)
        try:
            return packaging_tool.pip_install(
                dist=dist,
                verbose=env.context.verbose,
                args=pip_args,
                extra_envs=envs if envs is not None else {},
                logger=logger,
            )
        except (PackagingToolError, OSError) as e:
            raise OperationError(
                f"error running pip install: {e}", label=label, code=PIP_INSTALL_ERROR
            ) from e

    def read_package_root(self, env: ConfigEnvironment, path: object, packages: object) -> list[Resource]:
        """PythonDistribution.read_package_root(path, packages)"""

        label: str = "read_package_root()"
        root: str = required_str_arg("path", path)
        package_names: list[str] = required_list_arg("packages", "string", packages)

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)
        try:
            resources: list[Resource] = packaging_tool.find_resources(dist, pathlib.Path(root), logger=logger)
        except (PackagingToolError, OSError) as e:
            raise OperationError(
                f"could not find resources: {e}", label=label, code=PACKAGE_ROOT_ERROR
            ) from e

        return [r for r in resources if r.is_in_packages(package_names) is True]

    def read_virtualenv(self, env: ConfigEnvironment, path: object) -> list[Resource]:
        """PythonDistribution.read_virtualenv(path)"""

        label: str = "read_virtualenv()"
        venv: str = required_str_arg("path", path)

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)
        try:
            return packaging_tool.read_virtualenv(dist=dist, path=pathlib.Path(venv), logger=logger)
        except (PackagingToolError, DistributionError, OSError) as e:
            raise OperationError(
                f"could not find resources: {e}", label=label, code=VIRTUALENV_ERROR
            ) from e

    def setup_py_install(
        self,
        env: ConfigEnvironment,
        package_path: object,
        extra_envs: object,
        extra_global_arguments: object,
    ) -> list[Resource]:
        """PythonDistribution.setup_py_install(package_path, extra_envs=None, extra_global_arguments=None)"""

        label: str = "setup_py_install()"
        package: pathlib.Path = pathlib.Path(required_str_arg("package_path", package_path))
        envs: dict[str, str] | None = optional_dict_arg("extra_envs", "string", "string", extra_envs)
        global_args: list[str] | None = optional_list_arg(
            "extra_global_arguments", "string", extra_global_arguments
        )

        if package.is_absolute() is False:
            package = env.context.cwd / package

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)
        try:
            resources: list[Resource] = packaging_tool.setup_py_install(
                dist=dist,
                package_path=package,
                verbose=env.context.verbose,
                extra_envs=envs if envs is not None else {},
                extra_global_arguments=global_args if global_args is not None else [],
                logger=logger,
            )
        except (PackagingToolError, DistributionError, OSError) as e:
            raise OperationError(str(e), label=label, code=SETUP_PY_ERROR) from e

        logger.info(f"distconfig: collected {len(resources)} resources from setup.py install")
        return resources

    def to_python_executable(
        self,
        env: ConfigEnvironment,
        name: object,
        resources_policy: object,
        config: object,
        extension_module_filter: object,
        preferred_extension_module_variants: object,
        include_sources: object,
        include_resources: object,
        include_test: object,
    ) -> PythonExecutable:
        """PythonDistribution.to_python_executable(name, ...)"""

        label: str = "to_python_executable()"
        exe_name: str = required_str_arg("name", name)
        policy: ResourcesPolicy = parse_enum_arg(
            "resources_policy",
            ResourcesPolicy.parse,
            required_str_arg("resources_policy", resources_policy),
        )
        embedded: object | None = optional_type_arg("config", "PythonInterpreterConfig", config)
        extension_filter: ExtensionModuleFilter = parse_enum_arg(
            "extension_module_filter",
            ExtensionModuleFilter.parse,
            required_str_arg("extension_module_filter", extension_module_filter),
        )
        variants: dict[str, str] | None = optional_dict_arg(
            "preferred_extension_module_variants",
            "string",
            "string",
            preferred_extension_module_variants,
        )
        sources: bool = required_bool_arg("include_sources", include_sources)
        resources: bool = required_bool_arg("include_resources", include_resources)
        tests: bool = required_bool_arg("include_test", include_test)

        logger: logging.Logger = env.context.logger
        dist: StandaloneDistribution = self._resolve(logger, label=label)

        if embedded is None:
            default_config: object = env.call("PythonInterpreterConfig")
            embedded = optional_type_arg("config", "PythonInterpreterConfig", default_config)

        try:
            return dist.as_python_executable_builder(
                host_triple=env.context.build_host_triple,
                target_triple=env.context.build_target_triple,
                name=exe_name,
                resources_policy=policy,
                config=embedded,
                extension_module_filter=extension_filter,
                preferred_extension_module_variants=variants,
                include_sources=sources,
                include_resources=resources,
                include_test=tests,
                logger=logger,
            )
        except (DistributionError, OSError) as e:
            raise OperationError(str(e), label=label, code=EXECUTABLE_BUILD_ERROR) from e


def default_python_distribution(
    env: ConfigEnvironment,
    flavor: object,
    build_target: object,
) -> PythonDistribution:
    """default_python_distribution(flavor="standalone", build_target=None)"""

    flavor_value: DistributionFlavor = parse_enum_arg(
        "flavor",
        DistributionFlavor.parse,
        required_str_arg("flavor", flavor),
    )
    target: str | None = optional_str_arg("build_target", build_target)
    if target is None:
        target = env.context.build_target_triple

    try:
        location: UrlDistributionLocation = default_distribution_location(flavor_value, target)
    except ValueError as e:
        raise ResolutionError(str(e), code=UNKNOWN_DISTRIBUTION) from e

    return PythonDistribution(flavor_value, location, env.context.python_distributions_path)


def python_distribution_from_args(
    env: ConfigEnvironment,
    sha256: object,
    local_path: object,
    url: object,
    flavor: object,
) -> PythonDistribution:
    """PythonDistribution(sha256, local_path=None, url=None, flavor="standalone")"""

    checksum: str = required_str_arg("sha256", sha256)
    path: str | None = optional_str_arg("local_path", local_path)
    archive_url: str | None = optional_str_arg("url", url)
    flavor_name: str = required_str_arg("flavor", flavor)

    exclusive_args("local_path", path, "url", archive_url)

    location: DistributionLocation
    if path is not None:
        location = LocalDistributionLocation(local_path=path, sha256=checksum)
    else:
        location = UrlDistributionLocation(url=str(archive_url), sha256=checksum)

    flavor_value: DistributionFlavor = parse_enum_arg("flavor", DistributionFlavor.parse, flavor_name)
    return PythonDistribution(flavor_value, location, env.context.python_distributions_path)


def _method(name: str, params: tuple[Param, ...]) -> ScriptFunction:
    return ScriptFunction(name=name, params=params, handler=getattr(PythonDistribution, name))


def register_python_distribution_module(env: ConfigEnvironment) -> None:
    """Bind the distribution constructors, methods and record types."""

    env.register_type(
        ScriptType(
            name="PythonDistribution",
            cls=PythonDistribution,
            methods=(
                _method("extension_modules", (Param("filter", "all"), Param("preferred_variants", None))),
                _method("source_modules", ()),
                _method("package_resources", (Param("include_test", False),)),
                _method("pip_install", (Param("args"), Param("extra_envs", None))),
                _method("read_package_root", (Param("path"), Param("packages"))),
                _method("read_virtualenv", (Param("path"),)),
                _method(
                    "setup_py_install",
                    (
                        Param("package_path"),
                        Param("extra_envs", None),
                        Param("extra_global_arguments", None),
                    ),
                ),
                _method(
                    "to_python_executable",
                    (
                        Param("name"),
                        Param("resources_policy", "in-memory-only"),
                        Param("config", None),
                        Param("extension_module_filter", "all"),
                        Param("preferred_extension_module_variants", None),
                        Param("include_sources", True),
                        Param("include_resources", False),
                        Param("include_test", False),
                    ),
                ),
            ),
        )
    )
    env.register_type(
        ScriptType(
            name="PythonSourceModule",
            cls=SourceModule,
            attributes=("name", "is_package"),
        )
    )
    env.register_type(
        ScriptType(
            name="PythonExtensionModule",
            cls=ExtensionModule,
            attributes=("name", "variant", "required", "builtin", "links"),
        )
    )
    env.register_type(
        ScriptType(
            name="PythonPackageResource",
            cls=PackageResource,
            attributes=("leaf_package", "relative_name"),
        )
    )

    env.register_function(
        ScriptFunction(
            name="default_python_distribution",
            params=(Param("flavor", "standalone"), Param("build_target", None)),
            handler=default_python_distribution,
        )
    )
    env.register_function(
        ScriptFunction(
            name="PythonDistribution",
            params=(
                Param("sha256"),
                Param("local_path", None),
                Param("url", None),
                Param("flavor", "standalone"),
            ),
            handler=python_distribution_from_args,
        )
    )
