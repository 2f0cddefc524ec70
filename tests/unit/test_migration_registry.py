from apptracker.core.migration import MigrationRegistry, MigrationResult


def _run(registry: MigrationRegistry, key: str) -> MigrationResult:
    assert registry.begin(key)
    result = MigrationResult()
    registry.finish(key, result)
    return result


def test_finished_keys_are_not_run_twice() -> None:
    registry = MigrationRegistry()
    result = _run(registry, "token-a")
    assert not registry.begin("token-a")
    assert registry.result("token-a") is result


def test_only_the_newest_results_are_kept() -> None:
    registry = MigrationRegistry(max_results=3)
    for index in range(10):
        _run(registry, f"token-{index}")

    assert len(registry) == 3
    assert registry.result("token-0") is None
    assert registry.result("token-9") is not None
    assert registry.begin("token-0")


def test_forget_drops_the_key() -> None:
    registry = MigrationRegistry()
    _run(registry, "token-a")
    registry.forget("token-a")
    registry.forget("never-seen")

    assert len(registry) == 0
    assert registry.begin("token-a")
