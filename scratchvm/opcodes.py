from typing import Dict

# Number of trailing branch elements for legacy opcodes with nested scripts.
# Opcodes missing from this table carry no branches.
BRANCH_ARITY: Dict[str, int] = {
    # C blocks
    "doForever": 1,
    "doForeverIf": 1,
    "doRepeat": 1,
    "doUntil": 1,
    "doWhile": 1,
    "doIf": 1,
    "doForLoop": 1,
    "doWarp": 1,
    # E blocks
    "doIfElse": 2,
    "ifElse": 2,
}

# Hat opcodes mapped to the trigger kind that starts their script
HAT_OPCODES: Dict[str, str] = {
    "whenGreenFlag": "green_flag",
    "whenKeyPressed": "key",
    "whenClicked": "click",
    "whenIReceive": "broadcast",
    "whenSceneStarts": "scene",
    "whenCloned": "clone",
}

# Condition hats: started on the tick their condition turns true
EDGE_HAT_OPCODES = {"whenSensorGreaterThan"}

# Mapping of legacy opcodes to text templates.
# Placeholders are argument positions; branches are rendered as indented bodies.
OPCODE_LABELS: Dict[str, str] = {
    # Events
    "whenGreenFlag": "when green flag clicked",
    "whenKeyPressed": "when [{0} v] key pressed",
    "whenClicked": "when this sprite clicked",
    "whenSceneStarts": "when backdrop switches to [{0} v]",
    "whenSensorGreaterThan": "when [{0} v] > {1}",
    "whenIReceive": "when I receive [{0} v]",
    "whenCloned": "when I start as a clone",
    "broadcast:": "broadcast {0}",
    "doBroadcastAndWait": "broadcast {0} and wait",

    # Motion
    "forward:": "move {0} steps",
    "turnRight:": "turn right {0} degrees",
    "turnLeft:": "turn left {0} degrees",
    "heading:": "point in direction {0}",
    "pointTowards:": "point towards {0}",
    "gotoX:y:": "go to x: {0} y: {1}",
    "gotoSpriteOrMouse:": "go to {0}",
    "glideSecs:toX:y:elapsed:from:": "glide {0} secs to x: {1} y: {2}",
    "changeXposBy:": "change x by {0}",
    "xpos:": "set x to {0}",
    "changeYposBy:": "change y by {0}",
    "ypos:": "set y to {0}",
    "bounceOffEdge": "if on edge, bounce",
    "setRotationStyle": "set rotation style [{0} v]",
    "xpos": "(x position)",
    "ypos": "(y position)",
    "heading": "(direction)",

    # Looks
    "say:duration:elapsed:from:": "say {0} for {1} seconds",
    "say:": "say {0}",
    "think:duration:elapsed:from:": "think {0} for {1} seconds",
    "think:": "think {0}",
    "show": "show",
    "hide": "hide",
    "lookLike:": "switch costume to {0}",
    "nextCostume": "next costume",
    "startScene": "switch backdrop to {0}",
    "changeSizeBy:": "change size by {0}",
    "setSizeTo:": "set size to {0} %",
    "costumeIndex": "(costume #)",
    "scale": "(size)",

    # Sound
    "playSound:": "start sound {0}",
    "doPlaySoundAndWait": "play sound {0} until done",
    "stopAllSounds": "stop all sounds",

    # Control
    "wait:elapsed:from:": "wait {0} seconds",
    "doForever": "forever",
    "doForeverIf": "forever if {0}",
    "doRepeat": "repeat {0}",
    "doUntil": "repeat until {0}",
    "doWhile": "while {0}",
    "doForLoop": "for each [{0} v] in {1}",
    "doIf": "if {0} then",
    "doIfElse": "if {0} then",
    "ifElse": "if {0} then",
    "doWaitUntil": "wait until {0}",
    "doWarp": "all at once",
    "stopScripts": "stop [{0} v]",
    "createCloneOf": "create clone of {0}",
    "deleteClone": "delete this clone",

    # Operators
    "+": "({0} + {1})",
    "-": "({0} - {1})",
    "*": "({0} * {1})",
    "/": "({0} / {1})",
    "%": "({0} mod {1})",
    "<": "<{0} < {1}>",
    "=": "<{0} = {1}>",
    ">": "<{0} > {1}>",
    "&": "<{0} and {1}>",
    "|": "<{0} or {1}>",
    "not": "<not {0}>",
    "concatenate:with:": "(join {0} {1})",
    "randomFrom:to:": "(pick random {0} to {1})",

    # Data
    "readVariable": "({0})",
    "setVar:to:": "set [{0} v] to {1}",
    "changeVar:by:": "change [{0} v] by {1}",
    "append:toList:": "add {0} to [{1} v]",
    "deleteLine:ofList:": "delete {0} of [{1} v]",
    "getLine:ofList:": "(item {0} of [{1} v])",
    "lineCountOfList:": "(length of [{0} v])",
    "contentsOfList:": "({0})",

    # Sensing
    "timer": "(timer)",
    "timerReset": "reset timer",
    "keyPressed:": "<key [{0} v] pressed?>",

    # Procedures
    "getParam": "({0})",
}


def branch_arity(opcode: str) -> int:
    """Return how many trailing branch elements a block with ``opcode`` carries."""
    return BRANCH_ARITY.get(opcode, 0)


def is_hat(opcode: str) -> bool:
    return opcode in HAT_OPCODES or opcode in EDGE_HAT_OPCODES
