"""Declarative per-ecosystem rules: detection, build steps and resource profiles.

The classifier walks ``ECOSYSTEM_RULES`` in order and the first rule whose
manifests are present wins, so the tuple order *is* the precedence order.
Adding an ecosystem means adding a rule here; the algorithms never branch on
ecosystem names.

Step templates are rendered with ``str.format``; placeholders come from the
selected install variant (``tool``, ``run``, ``exec``, ...) plus ``entry``.
Shell variables are therefore written without braces (``$EXPOSED_PORT``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Mapping, Optional, Tuple

from .models import Ecosystem
from .probe import PYPROJECT_MYPY_SNIPPET, PYPROJECT_POETRY_SNIPPET


class Phase:
    """Step phases in the order they appear in a build job."""

    INSTALL = "install"
    TYPECHECK = "typecheck"
    LINT = "lint"
    BUILD = "build"
    TEST = "test"
    VERIFY = "run"
    DEPLOY = "deploy"


@dataclass(frozen=True)
class StepTemplate:
    name: str
    template: str


@dataclass(frozen=True)
class InstallVariant:
    """Install steps selected by the first marker present in the probe."""

    marker: Optional[str]
    steps: Tuple[StepTemplate, ...]
    context: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StartOption:
    """How to launch the application for the deploy job."""

    template: str
    requires_script: Optional[str] = None
    requires_manifest: Optional[str] = None
    requires_entry: bool = False


@dataclass(frozen=True)
class ResourceProfile:
    """Multipliers behind the disk and memory estimates."""

    base_multiplier: int
    dependency_weight: Fraction
    multiplier_cap: int
    memory_floor_mb: int
    memory_per_repo_mb: int
    memory_per_dependency_mb: int
    memory_cap_mb: int
    dependency_manifests: Tuple[str, ...]
    # Dependency count assumed when the manifest exists but could not be parsed.
    unparsed_dependency_count: int = 0


@dataclass(frozen=True)
class EcosystemRule:
    ecosystem: str
    manifests: Tuple[str, ...]
    source_suffixes: Tuple[str, ...]
    setup: Tuple[StepTemplate, ...]
    install_variants: Tuple[InstallVariant, ...]
    profile: ResourceProfile
    type_config: Tuple[str, ...] = ()
    typecheck: Tuple[StepTemplate, ...] = ()
    lint: Tuple[StepTemplate, ...] = ()
    build: Tuple[StepTemplate, ...] = ()
    test: Tuple[StepTemplate, ...] = ()
    verify_entry: Tuple[StepTemplate, ...] = ()
    start: Tuple[StartOption, ...] = ()
    entry_patterns: Tuple[str, ...] = ()
    web_patterns: Tuple[str, ...] = ()
    web_scripts: Tuple[str, ...] = ()
    data_load_patterns: Tuple[str, ...] = ()

    def matches(self, found: Mapping[str, str]) -> bool:
        return any(name in found for name in self.manifests)


_PYTHON = EcosystemRule(
    ecosystem=Ecosystem.PYTHON,
    manifests=("requirements.txt", "pyproject.toml", "Pipfile", "setup.py"),
    source_suffixes=(".py",),
    setup=(
        StepTemplate(
            "Install Python toolchain",
            "apt-get update && apt-get install -y python3 python3-pip python3-venv",
        ),
    ),
    install_variants=(
        InstallVariant(
            "poetry.lock",
            (
                StepTemplate("Install Poetry", "pip3 install poetry"),
                StepTemplate("Install dependencies with Poetry", "poetry install --no-interaction"),
            ),
            {"exec": "poetry run ", "pip": "poetry run pip"},
        ),
        InstallVariant(
            PYPROJECT_POETRY_SNIPPET,
            (
                StepTemplate("Install Poetry", "pip3 install poetry"),
                StepTemplate("Install dependencies with Poetry", "poetry install --no-interaction"),
            ),
            {"exec": "poetry run ", "pip": "poetry run pip"},
        ),
        InstallVariant(
            "Pipfile",
            (
                StepTemplate("Install Pipenv", "pip3 install pipenv"),
                StepTemplate("Install dependencies with Pipenv", "pipenv install --dev"),
            ),
            {"exec": "pipenv run ", "pip": "pipenv run pip"},
        ),
        InstallVariant(
            "requirements.txt",
            (StepTemplate("Install Python dependencies", "pip3 install -r requirements.txt"),),
            {"exec": "", "pip": "pip3"},
        ),
        InstallVariant(
            None,
            (StepTemplate("Install Python project", "pip3 install ."),),
            {"exec": "", "pip": "pip3"},
        ),
    ),
    profile=ResourceProfile(
        base_multiplier=5,
        dependency_weight=Fraction(2),
        multiplier_cap=50,
        memory_floor_mb=512,
        memory_per_repo_mb=2,
        memory_per_dependency_mb=16,
        memory_cap_mb=1536,
        dependency_manifests=("requirements.txt", "pyproject.toml", "Pipfile"),
    ),
    type_config=("mypy.ini", ".mypy.ini", "pyrightconfig.json", PYPROJECT_MYPY_SNIPPET),
    typecheck=(
        StepTemplate("Type-check with mypy", "{pip} install mypy && {exec}python3 -m mypy ."),
    ),
    build=(StepTemplate("Compile Python sources", "{exec}python3 -m compileall -q ."),),
    test=(StepTemplate("Run tests", '{exec}python3 -m pytest tests/ || echo "Tests are optional"'),),
    verify_entry=(
        StepTemplate("Verify executable entry point", "{exec}python3 -m py_compile {entry}"),
    ),
    start=(StartOption("{exec}python3 {entry}", requires_entry=True),),
    entry_patterns=(
        r"""if\s+__name__\s*==\s*['"]__main__['"]\s*:""",
        r"execute_from_command_line\(",
        r"uvicorn\.run\(",
    ),
    web_patterns=(
        r"^\s*(?:from|import)\s+(?:flask|fastapi|django|aiohttp|tornado|starlette|bottle|sanic)\b",
        r"uvicorn\.run\(",
        r"\bapp\.run\(",
    ),
    data_load_patterns=(
        r"\bpd\.read_(?:csv|parquet|json|excel)\(",
        r"\bnp\.load\(",
        r"\bpickle\.load\(",
        r"\bjson\.load\(",
        r"""open\([^)\n]*['"]rb?['"]""",
    ),
)

_NODE = EcosystemRule(
    ecosystem=Ecosystem.NODE,
    manifests=("package.json",),
    source_suffixes=(".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"),
    setup=(
        StepTemplate(
            "Install Node.js toolchain",
            "apt-get update && apt-get install -y curl"
            " && curl -fsSL https://deb.nodesource.com/setup_lts.x | bash -"
            " && apt-get install -y nodejs",
        ),
    ),
    install_variants=(
        InstallVariant(
            "pnpm-lock.yaml",
            (
                StepTemplate("Enable pnpm", "npm install -g pnpm"),
                StepTemplate("Install Node.js dependencies (pnpm)", "pnpm install --frozen-lockfile"),
            ),
            {"tool": "pnpm", "run": "pnpm run"},
        ),
        InstallVariant(
            "yarn.lock",
            (
                StepTemplate("Enable yarn", "npm install -g yarn"),
                StepTemplate("Install Node.js dependencies (yarn)", "yarn install --frozen-lockfile"),
            ),
            {"tool": "yarn", "run": "yarn run"},
        ),
        InstallVariant(
            "package-lock.json",
            (StepTemplate("Install Node.js dependencies (npm)", "npm ci"),),
            {"tool": "npm", "run": "npm run"},
        ),
        InstallVariant(
            None,
            (StepTemplate("Install Node.js dependencies (npm)", "npm install"),),
            {"tool": "npm", "run": "npm run"},
        ),
    ),
    profile=ResourceProfile(
        base_multiplier=10,
        dependency_weight=Fraction(1, 3),
        multiplier_cap=100,
        memory_floor_mb=1024,
        memory_per_repo_mb=2,
        memory_per_dependency_mb=8,
        memory_cap_mb=3072,
        dependency_manifests=("package.json",),
        unparsed_dependency_count=20,
    ),
    type_config=("tsconfig.json",),
    typecheck=(StepTemplate("Type-check with tsc", "npx tsc --noEmit"),),
    build=(StepTemplate("Build application", '{run} build || echo "Build is optional"'),),
    test=(StepTemplate("Run tests", '{tool} test || echo "Tests are optional"'),),
    verify_entry=(StepTemplate("Verify executable entry point", "node --check {entry}"),),
    start=(
        StartOption("{tool} start", requires_script="start"),
        StartOption("node {entry}", requires_entry=True),
    ),
    entry_patterns=(
        r"require\.main\s*===\s*module",
        r"\.listen\(",
    ),
    web_patterns=(
        r"""require\(\s*['"](?:express|koa|fastify|@hapi/hapi|next)['"]\s*\)""",
        r"""from\s+['"](?:express|koa|fastify|@hapi/hapi|next)['"]""",
        r"http\.createServer\(",
        r"\.listen\(",
    ),
    web_scripts=("start",),
    data_load_patterns=(
        r"\bfs\.readFile(?:Sync)?\(",
        r"\bcreateReadStream\(",
    ),
)

_JAVA = EcosystemRule(
    ecosystem=Ecosystem.JAVA,
    manifests=("pom.xml", "build.gradle", "build.gradle.kts"),
    source_suffixes=(".java", ".kt"),
    setup=(StepTemplate("Install JDK", "apt-get update && apt-get install -y openjdk-17-jdk"),),
    install_variants=(
        InstallVariant(
            "mvnw",
            (StepTemplate("Resolve Maven dependencies", "chmod +x mvnw && ./mvnw -B dependency:go-offline"),),
            {
                "tool": "./mvnw",
                "build_args": "-B package -DskipTests",
                "test_args": "-B test",
                "artifact": "target/*.jar",
            },
        ),
        InstallVariant(
            "pom.xml",
            (
                StepTemplate("Install Maven", "apt-get install -y maven"),
                StepTemplate("Resolve Maven dependencies", "mvn -B dependency:go-offline"),
            ),
            {
                "tool": "mvn",
                "build_args": "-B package -DskipTests",
                "test_args": "-B test",
                "artifact": "target/*.jar",
            },
        ),
        InstallVariant(
            "gradlew",
            (StepTemplate("Resolve Gradle dependencies", "chmod +x gradlew && ./gradlew dependencies"),),
            {
                "tool": "./gradlew",
                "build_args": "build -x test",
                "test_args": "test",
                "artifact": "build/libs/*.jar",
            },
        ),
        InstallVariant(
            None,
            (
                StepTemplate("Install Gradle", "apt-get install -y gradle"),
                StepTemplate("Resolve Gradle dependencies", "gradle dependencies"),
            ),
            {
                "tool": "gradle",
                "build_args": "build -x test",
                "test_args": "test",
                "artifact": "build/libs/*.jar",
            },
        ),
    ),
    profile=ResourceProfile(
        base_multiplier=30,
        dependency_weight=Fraction(0),
        multiplier_cap=30,
        memory_floor_mb=2048,
        memory_per_repo_mb=4,
        memory_per_dependency_mb=16,
        memory_cap_mb=4096,
        dependency_manifests=("pom.xml", "build.gradle", "build.gradle.kts"),
    ),
    build=(StepTemplate("Package application", "{tool} {build_args}"),),
    test=(StepTemplate("Run tests", "{tool} {test_args}"),),
    verify_entry=(StepTemplate("Verify executable entry point", "ls -1 {artifact}"),),
    start=(StartOption("java -jar {artifact}"),),
    entry_patterns=(
        r"public\s+static\s+void\s+main\s*\(",
        r"@SpringBootApplication",
        r"^\s*fun\s+main\s*\(",
    ),
    web_patterns=(
        r"@SpringBootApplication",
        r"@RestController",
        r"\bio\.javalin\b",
        r"HttpServer\.create\(",
    ),
    data_load_patterns=(
        r"\bFileInputStream\(",
        r"\bFiles\.read",
        r"\bnew\s+FileReader\(",
    ),
)

_GO = EcosystemRule(
    ecosystem=Ecosystem.GO,
    manifests=("go.mod",),
    source_suffixes=(".go",),
    setup=(StepTemplate("Install Go toolchain", "apt-get update && apt-get install -y golang"),),
    install_variants=(
        InstallVariant(None, (StepTemplate("Download Go modules", "go mod download"),)),
    ),
    profile=ResourceProfile(
        base_multiplier=4,
        dependency_weight=Fraction(0),
        multiplier_cap=4,
        memory_floor_mb=512,
        memory_per_repo_mb=1,
        memory_per_dependency_mb=8,
        memory_cap_mb=1536,
        dependency_manifests=("go.mod",),
    ),
    lint=(StepTemplate("Vet Go sources", "go vet ./..."),),
    build=(StepTemplate("Build Go binary", "go build -o app ."),),
    test=(StepTemplate("Run tests", "go test ./..."),),
    verify_entry=(
        StepTemplate("Verify executable entry point", 'test -x ./app && echo "Entry point: {entry}"'),
    ),
    start=(StartOption("./app"),),
    entry_patterns=(r"(?s)^package\s+main\b.*\bfunc\s+main\s*\(",),
    web_patterns=(
        r"http\.ListenAndServe\(",
        r"\bgin\.Default\(",
        r"\becho\.New\(",
        r"\bfiber\.New\(",
    ),
    data_load_patterns=(
        r"\bos\.Open\(",
        r"\bos\.ReadFile\(",
        r"\bioutil\.ReadFile\(",
    ),
)

_RUST = EcosystemRule(
    ecosystem=Ecosystem.RUST,
    manifests=("Cargo.toml",),
    source_suffixes=(".rs",),
    setup=(
        StepTemplate(
            "Install Rust toolchain",
            "apt-get update && apt-get install -y curl build-essential"
            " && curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y"
            ' && . "$HOME/.cargo/env"',
        ),
    ),
    install_variants=(
        InstallVariant(None, (StepTemplate("Fetch Rust dependencies", "cargo fetch"),)),
    ),
    profile=ResourceProfile(
        base_multiplier=15,
        dependency_weight=Fraction(1, 2),
        multiplier_cap=40,
        memory_floor_mb=1024,
        memory_per_repo_mb=4,
        memory_per_dependency_mb=16,
        memory_cap_mb=3072,
        dependency_manifests=("Cargo.toml",),
    ),
    lint=(StepTemplate("Check Rust sources", "cargo check --all-targets"),),
    build=(StepTemplate("Build release binary", "cargo build --release"),),
    test=(StepTemplate("Run tests", "cargo test"),),
    verify_entry=(
        StepTemplate(
            "Verify executable entry point",
            'test -d target/release && echo "Entry point: {entry}"',
        ),
    ),
    start=(StartOption("cargo run --release"),),
    entry_patterns=(r"\bfn\s+main\s*\(",),
    web_patterns=(
        r"\bactix_web\b",
        r"\brocket::",
        r"\baxum::",
        r"\bwarp::",
        r"TcpListener::bind\(",
    ),
    data_load_patterns=(
        r"\bFile::open\(",
        r"\bfs::read_to_string\(",
    ),
)

_RUBY = EcosystemRule(
    ecosystem=Ecosystem.RUBY,
    manifests=("Gemfile",),
    source_suffixes=(".rb", ".ru"),
    setup=(
        StepTemplate(
            "Install Ruby toolchain",
            "apt-get update && apt-get install -y ruby-full build-essential && gem install bundler",
        ),
    ),
    install_variants=(
        InstallVariant(
            "Gemfile.lock",
            (
                StepTemplate(
                    "Install Ruby dependencies",
                    "bundle config set frozen true && bundle install",
                ),
            ),
        ),
        InstallVariant(None, (StepTemplate("Install Ruby dependencies", "bundle install"),)),
    ),
    profile=ResourceProfile(
        base_multiplier=6,
        dependency_weight=Fraction(1, 2),
        multiplier_cap=30,
        memory_floor_mb=512,
        memory_per_repo_mb=2,
        memory_per_dependency_mb=16,
        memory_cap_mb=1536,
        dependency_manifests=("Gemfile",),
    ),
    test=(
        StepTemplate(
            "Run tests",
            "if [ -f Rakefile ]; then\n"
            "  bundle exec rake\n"
            "elif [ -d spec ]; then\n"
            "  bundle exec rspec\n"
            "else\n"
            '  echo "Tests are optional"\n'
            "fi",
        ),
    ),
    verify_entry=(StepTemplate("Verify executable entry point", "bundle exec ruby -c {entry}"),),
    start=(
        StartOption(
            "bundle exec rackup config.ru --host 0.0.0.0 --port $EXPOSED_PORT",
            requires_manifest="config.ru",
        ),
        StartOption("bundle exec ruby {entry}", requires_entry=True),
    ),
    entry_patterns=(
        r"if\s+__FILE__\s*==\s*\$0",
        r"\bSinatra::Application\.run!",
        r"^\s*run\s+[A-Z]\w*",
    ),
    web_patterns=(
        r"""require\s+['"]sinatra""",
        r"\bRails\.application\b",
        r"^\s*run\s+[A-Z]\w*",
    ),
    data_load_patterns=(
        r"\bFile\.read\(",
        r"\bCSV\.read",
        r"\bYAML\.load_file\(",
    ),
)

ECOSYSTEM_RULES: Tuple[EcosystemRule, ...] = (_PYTHON, _NODE, _JAVA, _GO, _RUST, _RUBY)

_RULES_BY_NAME: Dict[str, EcosystemRule] = {rule.ecosystem: rule for rule in ECOSYSTEM_RULES}


def rule_for(ecosystem: str) -> EcosystemRule:
    """Return the rule for ``ecosystem``; raises KeyError for unknown."""
    return _RULES_BY_NAME[ecosystem]


def all_source_suffixes() -> Tuple[str, ...]:
    suffixes = []
    for rule in ECOSYSTEM_RULES:
        for suffix in rule.source_suffixes:
            if suffix not in suffixes:
                suffixes.append(suffix)
    return tuple(suffixes)
