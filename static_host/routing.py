import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .config import (
    DEFAULT_CONFIG_NAME,
    DirectoryRule,
    ProxyRule,
    descriptor_adapter,
    read_config_file,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: str
    target: DirectoryRule | ProxyRule

    @property
    def local_path(self) -> str | None:
        if isinstance(self.target, DirectoryRule):
            return self.target.path or self.prefix
        return None


#---- Dispatch outcomes ----
class FileServe(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: str
    local_path: str
    index_file: str
    allow_listing: bool


class Forward(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_url: str


class NoMatch(BaseModel):
    model_config = ConfigDict(frozen=True)


DispatchOutcome = FileServe | Forward | NoMatch


class RuleSet:
    """
    Immutable, ordered collection of prefix rules.

    Rules are kept longest prefix first; equal lengths keep insertion order,
    so the first rule whose prefix the path starts with is the most specific.
    Matching is a raw string prefix test, not path-segment aware: '/api'
    matches '/apiary'.
    """
    __slots__ = ('_rules',)

    def __init__(self, rules: Iterable[Rule]):
        # sorted() is stable with reverse=True
        self._rules = tuple(sorted(rules, key=lambda rule: len(rule.prefix), reverse=True))

    @classmethod
    def build(cls, mapping: Mapping[str, Any]) -> 'RuleSet':
        """
        Compile rules from a prefix -> descriptor mapping.
        :raises ConfigError: on an empty prefix or a descriptor that is
            neither a directory nor a proxy shape (or both)
        """
        rules = []
        for prefix, descriptor in mapping.items():
            if not isinstance(prefix, str) or not prefix:
                raise ConfigError(f'rule prefix must be a non-empty string, got {prefix!r}')
            try:
                target = descriptor_adapter.validate_python(descriptor)
            except ValidationError as exc:
                raise ConfigError(f'invalid rule for {prefix!r}: {exc}') from exc
            rules.append(Rule(prefix=prefix, target=target))
        return cls(rules)

    @classmethod
    def from_directory(cls, path: str | Path) -> 'RuleSet':
        return cls([Rule(prefix='/', target=DirectoryRule(path=str(path)))])

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        return f'RuleSet({[rule.prefix for rule in self._rules]!r})'

    def match(self, path: str) -> Rule | None:
        for rule in self._rules:
            if path.startswith(rule.prefix):
                return rule
        return None

    def dispatch(self, path: str, query: str = '') -> DispatchOutcome:
        """
        Resolve a request path (and raw query string) to what should happen.

        Proxy targets are rebuilt as target base + path after the matched
        prefix, with the query appended verbatim when non-empty.
        """
        rule = self.match(path)
        if rule is None:
            return NoMatch()

        target = rule.target
        if isinstance(target, ProxyRule):
            url = target.proxy_to + path[len(rule.prefix):]
            if query:
                url = f'{url}?{query}'
            return Forward(target_url=url)

        return FileServe(
            prefix=rule.prefix,
            local_path=rule.local_path,
            index_file=target.index,
            allow_listing=target.dir,
        )


def load_rules(source: str | Path | None = None) -> RuleSet:
    """
    Resolve a configuration source into a RuleSet.

    - None: ./static_host.json if present, otherwise serve the working directory at /
    - a file: JSON object mapping prefix to descriptor
    - a directory: serve it at /
    :raises ConfigError: if the source is missing, unreadable or malformed
    """
    if source is None:
        default = Path(DEFAULT_CONFIG_NAME)
        if default.is_file():
            return load_rules(default)
        return RuleSet.from_directory(Path.cwd())

    path = Path(source)
    if path.is_file():
        logger.info('loading config from %s', path)
        return RuleSet.build(read_config_file(path))
    if path.is_dir():
        return RuleSet.from_directory(path)
    raise ConfigError(f'config source {path} does not exist')
