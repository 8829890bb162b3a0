import math

import pytest

from scratchvm.diagnostics import DiagnosticLevel
from scratchvm.execution import BlockExecutor, StepResult
from scratchvm.scheduler import Scheduler, start_hats

from conftest import build_handle, sprite_document, stage_document


def run_green_flag(document, ticks=1, scheduler=None, clock=None):
    """Press the green flag and run ``ticks`` ticks with a clock that never moves."""
    handle = build_handle(document)
    scheduler = scheduler or Scheduler(clock=clock or (lambda: 0.0))
    handle.green_flag()
    for _ in range(ticks):
        scheduler.tick(handle, now=0.0)
    return handle


def cat_with(*scripts, **fields):
    items = [[0, 50 * index, blocks] for index, blocks in enumerate(scripts)]
    return stage_document(
        variables=[{"name": "count", "value": 0}],
        lists=[{"listName": "items", "contents": ["a", "b"]}],
        children=[sprite_document("Cat", scripts=items, **fields)],
    )


def var(handle, name, target="Cat"):
    found = handle.lookup_variable(handle.find_target(target), name)
    return found.value if found is not None else None


def test_motion_blocks():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["gotoX:y:", 10, 20],
        ["forward:", 10],
        ["turnRight:", 90],
        ["forward:", 5],
        ["turnLeft:", 450],
    ]))
    cat = handle.find_target("Cat")
    assert cat.x == pytest.approx(20)
    assert cat.y == pytest.approx(15)
    assert cat.direction == 90


def test_direction_wraps():
    handle = run_green_flag(cat_with([["whenGreenFlag"], ["heading:", 270]]))
    assert handle.find_target("Cat").direction == -90


def test_repeat_and_variables():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["doRepeat", 4, [["changeVar:by:", "count", 1]]],
        ["doRepeat", 0, [["changeVar:by:", "count", 100]]],
    ]))
    assert var(handle, "count") == 4
    assert handle.threads == []


def test_if_else_picks_one_branch():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["doIfElse", ["<", ["readVariable", "count"], 3],
            [["setVar:to:", "result", "low"]],
            [["setVar:to:", "result", "high"]]],
        ["doIf", ["=", ["readVariable", "result"], "LOW"], [["setVar:to:", "matched", True]]],
    ]))
    assert var(handle, "result") == "low"
    assert var(handle, "matched") is True


def test_until_and_while_loops():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["doUntil", [">", ["readVariable", "count"], 4], [["changeVar:by:", "count", 1]]],
        ["setVar:to:", "n", 0],
        ["doWhile", ["<", ["readVariable", "n"], 3], [["changeVar:by:", "n", 1]]],
    ]))
    assert var(handle, "count") == 5
    assert var(handle, "n") == 3


def test_for_loop_counts_from_one():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["deleteLine:ofList:", "all", "items"],
        ["doForLoop", "i", 3, [["append:toList:", ["readVariable", "i"], "items"]]],
    ]))
    stage = handle.stage
    assert stage.lists["items"].values == [1, 2, 3]


def test_list_blocks():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["append:toList:", "c", "items"],
        ["insert:at:ofList:", "first", 1, "items"],
        ["deleteLine:ofList:", "last", "items"],
        ["setLine:ofList:to:", 2, "items", "A"],
        ["setVar:to:", "second", ["getLine:ofList:", 2, "items"]],
        ["setVar:to:", "length", ["lineCountOfList:", "items"]],
        ["setVar:to:", "missing", ["getLine:ofList:", 9, "items"]],
    ]))
    assert handle.stage.lists["items"].values == ["first", "A", "b"]
    assert var(handle, "second") == "A"
    assert var(handle, "length") == 3
    assert var(handle, "missing") == ""


def test_operators():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["setVar:to:", "numeric", ["=", "10", "10.0"]],
        ["setVar:to:", "text", ["=", "Hello", "hello"]],
        ["setVar:to:", "joined", ["concatenate:with:", "a", 1]],
        ["setVar:to:", "divided", ["/", 1, 0]],
        ["setVar:to:", "mod", ["%", -1, 3]],
        ["setVar:to:", "both", ["&", True, ["not", False]]],
        ["setVar:to:", "contents", ["contentsOfList:", "items"]],
    ]))
    assert var(handle, "numeric") is True
    assert var(handle, "text") is True
    assert var(handle, "joined") == "a1"
    assert math.isinf(var(handle, "divided"))
    assert var(handle, "mod") == 2
    assert var(handle, "both") is True
    assert var(handle, "contents") == "ab"


def test_procedure_call_with_parameters_and_defaults():
    handle = run_green_flag(cat_with(
        [
            ["procDef", "jump %n", ["height"], [10], False],
            ["changeYposBy:", ["getParam", "height", "r"]],
        ],
        [
            ["whenGreenFlag"],
            ["call", "jump %n", 25],
            ["call", "jump %n"],
            ["call", "no such block"],
        ],
    ))
    assert handle.find_target("Cat").y == 35


def test_runaway_recursion_faults_only_its_thread():
    handle = run_green_flag(cat_with(
        [["procDef", "dive", [], [], True], ["call", "dive"]],
        [["whenGreenFlag"], ["call", "dive"]],
        [["whenGreenFlag"], ["setVar:to:", "other", "ran"]],
    ))
    assert var(handle, "other") == "ran"
    assert handle.threads == []
    errors = handle.diagnostics.at_level(DiagnosticLevel.ERROR)
    assert len(errors) == 1
    assert "call depth" in errors[0].message


def test_timed_wait_sleeps_across_ticks(fake_clock):
    handle = build_handle(cat_with([["whenGreenFlag"], ["wait:elapsed:from:", 1], ["setVar:to:", "count", 5]]))
    scheduler = Scheduler(clock=fake_clock)
    handle.green_flag()

    scheduler.tick(handle, now=0.0)
    assert handle.threads[0].wake_time == 1.0

    report = scheduler.tick(handle, now=0.5)
    assert report.steps == 0
    assert var(handle, "count") == 0

    scheduler.tick(handle, now=1.0)
    assert var(handle, "count") == 5
    assert handle.threads == []


def test_wait_until_resumes_on_a_later_tick():
    document = cat_with(
        [["whenGreenFlag"], ["doWaitUntil", ["=", ["readVariable", "count"], 1]], ["setVar:to:", "done", "yes"]],
        [["whenKeyPressed", "space"], ["setVar:to:", "count", 1]],
    )
    handle = build_handle(document)
    scheduler = Scheduler(clock=lambda: 0.0)
    handle.green_flag()

    scheduler.tick(handle, now=0.0)
    handle.key_pressed("Space")
    scheduler.tick(handle, now=0.1)
    scheduler.tick(handle, now=0.2)

    assert var(handle, "done") == "yes"


def test_broadcast_starts_receivers_next_tick():
    document = cat_with([["whenGreenFlag"], ["broadcast:", "go"]])
    document["scripts"] = [[0, 0, [["whenIReceive", "GO"], ["setVar:to:", "count", 1]]]]
    handle = run_green_flag(document)
    assert handle.stage.variables["count"].value == 0

    Scheduler(clock=lambda: 0.0).tick(handle, now=0.0)
    assert handle.stage.variables["count"].value == 1


def test_stop_all_stops_every_thread():
    handle = build_handle(cat_with(
        [["whenGreenFlag"], ["doWaitUntil", ["=", 1, 2]], ["setVar:to:", "count", 9]],
        [["whenGreenFlag"], ["stopScripts", "all"]],
    ))
    handle.green_flag()
    report = Scheduler(clock=lambda: 0.0).tick(handle, now=0.0)

    assert handle.threads == []
    assert report.finished == 2
    assert var(handle, "count") == 0


def test_clone_runs_its_own_scripts():
    document = cat_with(
        [["whenGreenFlag"], ["createCloneOf", "_myself_"]],
        [["whenCloned"], ["changeXposBy:", 10], ["setVar:to:", "speed", 7]],
        variables=[{"name": "speed", "value": 3}],
    )
    handle = run_green_flag(document, ticks=2)

    original, clone = [t for t in handle.targets if t.name == "Cat"]
    assert not original.is_clone and clone.is_clone
    assert clone.sprite is original.sprite
    assert (original.x, clone.x) == (0, 10)
    assert original.variables["speed"].value == 3
    assert clone.variables["speed"].value == 7

    handle.green_flag()
    assert [t.name for t in handle.targets] == ["Stage", "Cat"]


def test_delete_clone_removes_the_target():
    document = cat_with(
        [["whenGreenFlag"], ["createCloneOf", "_myself_"]],
        [["whenCloned"], ["deleteClone"], ["changeXposBy:", 10]],
    )
    handle = run_green_flag(document, ticks=2)
    assert [t.name for t in handle.targets] == ["Stage", "Cat"]
    assert handle.find_target("Cat").x == 0


def test_unknown_opcode_is_a_noop_reported_once():
    handle = run_green_flag(cat_with([
        ["whenGreenFlag"],
        ["playDrum", 1, 0.25],
        ["playDrum", 2, 0.25],
        ["setVar:to:", "count", 3],
    ]))
    assert var(handle, "count") == 3
    infos = handle.diagnostics.at_level(DiagnosticLevel.INFO)
    assert len(infos) == 1
    assert "playDrum" in infos[0].message


def test_registered_handlers_replace_defaults():
    said = []
    executor = BlockExecutor()
    executor.register_command("say:", lambda thread, args: said.append((thread.target.name, args[0])))
    executor.register_reporter("answer", lambda thread, args: 42)

    handle = run_green_flag(
        cat_with([["whenGreenFlag"], ["say:", ["answer"]]]),
        scheduler=Scheduler(clock=lambda: 0.0, executor=executor),
    )

    assert said == [("Cat", 42)]
    assert handle.threads == []


def test_step_is_one_block():
    handle = build_handle(cat_with([["whenGreenFlag"], ["show"], ["hide"]]))
    handle.green_flag()
    scheduler = Scheduler(clock=lambda: 0.0)

    thread, = start_hats(handle)
    executor = scheduler.executor
    assert executor.step(thread) is StepResult.CONTINUE
    assert executor.step(thread) is StepResult.CONTINUE
    assert handle.find_target("Cat").visible is True
    assert executor.step(thread) is StepResult.CONTINUE
    assert handle.find_target("Cat").visible is False
    assert executor.step(thread) is StepResult.DONE
