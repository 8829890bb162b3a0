from scratchvm.assets import placeholder_resolver
from scratchvm.block_parser import decode_top_level_item
from scratchvm.from_legacy import convert_to_canonical
from scratchvm.legacy import parse_project
from scratchvm.script_text import format_item, format_sprite


def test_format_script_with_branches():
    item = decode_top_level_item([0, 0, [
        ["whenGreenFlag"],
        ["doForever", [
            ["doIfElse", [">", ["xpos"], 100],
                [["gotoX:y:", 0, 0]],
                [["changeXposBy:", ["readVariable", "speed"]]]],
        ]],
    ]])

    assert format_item(item) == (
        "when green flag clicked\n"
        "forever\n"
        "    if <(x position) > (100)> then\n"
        "        go to x: (0) y: (0)\n"
        "    else\n"
        "        change x by (speed)\n"
        "    end\n"
        "end\n"
    )


def test_format_procedure_definition():
    item = decode_top_level_item([0, 0, [
        ["procDef", "jump %n times", ["count"], [1], True],
        ["doRepeat", ["getParam", "count", "r"], [["changeYposBy:", 10]]],
        ["call", "jump %n times", 3],
    ]])

    assert format_item(item) == (
        "define jump (count) times #norefresh\n"
        "    repeat (count)\n"
        "        change y by (10)\n"
        "    end\n"
        "    jump (3) times\n"
    )


def test_unknown_opcode_is_rendered_verbatim():
    item = decode_top_level_item([0, 0, [["whenClicked"], ["playDrum", 1, 0.25]]])
    assert format_item(item) == "when this sprite clicked\nplayDrum (1) (0.25)\n"


def test_format_sprite_separates_scripts(legacy_document):
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)
    assert format_sprite(program.sprite("Cat")) == "when green flag clicked\nmove (10) steps\n"
    assert format_sprite(program.stage) == ""
