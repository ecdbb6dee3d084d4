from modrelay.app.moderation.flag_memory import FlagMemory


def test_unknown_id_not_flagged(memory):
    assert memory.was_recently_flagged("m1") is False


def test_remember_then_flagged(memory):
    memory.remember("m1")
    assert memory.was_recently_flagged("m1") is True
    assert "m1" in memory


def test_entry_valid_at_exact_ttl(memory, clock):
    memory.remember("m1")
    clock.advance(300)
    assert memory.was_recently_flagged("m1") is True


def test_expired_entry_evicted_on_lookup(memory, clock):
    memory.remember("m1")
    clock.advance(300.5)
    assert len(memory) == 1
    assert memory.was_recently_flagged("m1") is False
    assert len(memory) == 0


def test_expired_entry_not_evicted_without_lookup(memory, clock):
    memory.remember("m1")
    clock.advance(1000)
    # Lazy eviction only
    assert len(memory) == 1


def test_claim_is_first_wins(memory):
    assert memory.claim("m1") is True
    assert memory.claim("m1") is False
    assert memory.claim("m2") is True


def test_claim_again_after_ttl(memory, clock):
    assert memory.claim("m1") is True
    clock.advance(301)
    assert memory.claim("m1") is True


def test_remember_overwrites_timestamp(memory, clock):
    memory.remember("m1")
    clock.advance(200)
    memory.remember("m1")
    clock.advance(200)
    assert memory.was_recently_flagged("m1") is True


def test_sweep_drops_only_expired(memory, clock):
    memory.remember("old")
    clock.advance(250)
    memory.remember("new")
    clock.advance(100)
    assert memory.sweep() == 1
    assert len(memory) == 1
    assert memory.was_recently_flagged("new") is True


def test_instances_are_independent(clock):
    a = FlagMemory(clock=clock)
    b = FlagMemory(clock=clock)
    a.remember("m1")
    assert b.was_recently_flagged("m1") is False
