import concurrent.futures
import threading

import pytest

from scratchvm.assets import placeholder_resolver
from scratchvm.errors import ContainerError
from scratchvm.from_legacy import convert_to_canonical
from scratchvm.legacy import parse_project
from scratchvm.runtime import VirtualMachine, install
from scratchvm.scheduler import Scheduler

from conftest import FakeClock, sprite_document, stage_document


def program_with(*names):
    children = [sprite_document(name, scripts=[[0, 0, [["whenGreenFlag"], ["changeXposBy:", 5]]]]) for name in names]
    return convert_to_canonical(parse_project(stage_document(children=children)), placeholder_resolver)


@pytest.fixture
def vm():
    machine = VirtualMachine(Scheduler(clock=FakeClock()))
    yield machine
    machine.shutdown()


def test_install_spawns_one_target_per_sprite(legacy_document):
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)
    handle = install(program)

    assert [t.name for t in handle.targets] == ["Stage", "Cat"]
    assert handle.stage.is_stage
    cat = handle.find_target("Cat")
    assert (cat.x, cat.y, cat.scale) == (10, -20, 50.0)
    assert cat.sprite.scripts[0].hat.opcode == "whenGreenFlag"


def test_targets_do_not_share_state_with_the_program(legacy_document):
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)
    first = install(program)
    second = install(program)

    first.stage.variables["score"].value = 10
    first.stage.lists["items"].values.append("c")

    assert second.stage.variables["score"].value == 0
    assert program.stage.lists["items"].values == ["a", "b"]
    assert second.generation > first.generation


def test_variable_lookup_falls_back_to_the_stage(legacy_document):
    handle = install(convert_to_canonical(parse_project(legacy_document), placeholder_resolver))
    cat = handle.find_target("Cat")
    assert handle.lookup_variable(cat, "speed").value == 3
    assert handle.lookup_variable(cat, "score") is handle.stage.variables["score"]
    assert handle.lookup_variable(handle.stage, "speed") is None
    assert handle.lookup_list(cat, "items") is handle.stage.lists["items"]


def test_clone_limits():
    handle = install(program_with("Cat"))
    assert handle.create_clone(handle.stage) is None

    cat = handle.find_target("Cat")
    clone = handle.create_clone(cat)
    assert handle.targets.index(clone) == handle.targets.index(cat) + 1
    assert handle.find_target("Cat") is cat
    assert handle.pending_triggers[-1].kind == "clone"
    assert handle.pending_triggers[-1].target is clone


def test_staged_program_installs_at_the_next_tick(vm):
    vm.stage_program(program_with("Old"), start=True)
    vm.tick(0.0)
    old = vm.handle
    assert [t.name for t in old.targets] == ["Stage", "Old"]
    assert old.find_target("Old").x == 5

    vm.stage_program(program_with("New"))
    assert vm.handle is old

    vm.tick(0.1)
    assert vm.handle is not old
    assert vm.handle.generation > old.generation
    assert [t.name for t in vm.handle.targets] == ["Stage", "New"]
    assert vm.handle.find_target("New").x == 0


def test_background_load_is_swapped_in_between_ticks(vm):
    vm.stage_program(program_with("Old"), start=True)
    vm.tick(0.0)
    old = vm.handle

    release = threading.Event()

    def slow_loader():
        release.wait(5)
        return program_with("New")

    future = vm.load_in_background(slow_loader, start=True)
    vm.tick(0.1)
    assert vm.handle is old

    release.set()
    future.result(timeout=5)
    vm.tick(0.2)

    assert vm.handle is not old
    assert [t.name for t in vm.handle.targets] == ["Stage", "New"]
    assert vm.handle.find_target("New").x == 5


def test_failed_background_load_keeps_the_running_generation(vm):
    vm.stage_program(program_with("Old"))
    vm.tick(0.0)
    old = vm.handle

    def broken_loader():
        raise ContainerError("project.json not found in the archive")

    future = vm.load_in_background(broken_loader)
    concurrent.futures.wait([future], timeout=5)
    vm.tick(0.1)

    assert vm.handle is old
    assert isinstance(vm.load_error, ContainerError)


def test_cancelled_load_is_never_installed(vm):
    vm.stage_program(program_with("Old"))
    vm.tick(0.0)
    old = vm.handle

    vm.stage_program(program_with("New"))
    vm.cancel_pending_load()
    vm.tick(0.1)

    assert vm.handle is old


def test_tick_without_a_program_does_nothing(vm):
    assert vm.tick(0.0) is None
    assert vm.handle is None
