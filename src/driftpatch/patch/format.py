from __future__ import annotations

BEGIN_MARKER = "*** Begin Patch"
END_MARKER = "*** End Patch"
ADD_PREFIX = "*** Add File: "
UPDATE_PREFIX = "*** Update File: "
DELETE_PREFIX = "*** Delete File: "
MOVE_TO_PREFIX = "*** Move to: "
END_OF_FILE_MARKER = "*** End of File"
SECTION_PREFIX = "@@"

INS_LINE = "+"
DEL_LINE = "-"
CONTEXT_LINE = " "

FILE_HEADER_PREFIXES = (ADD_PREFIX, UPDATE_PREFIX, DELETE_PREFIX)


# System prompt that teaches a model to emit patches this package accepts.
V4A_SYSTEM_INSTRUCTION = r"""You edit files by replying with a single V4A patch.

## Envelope
Reply with one patch covering every file you change, and nothing else:

```patch
*** Begin Patch
<file sections>
*** End Patch
```

No explanations around it. No JSON or quoted strings around it.

## File sections
Start each file with one header. A path may appear in one section only.

  *** Add File: path/relative/to/root
  *** Update File: path/relative/to/root
  *** Delete File: path/relative/to/root

Add: each line of the new file is written as '+' followed by the line.
Delete: the header alone; do not repeat the file content.
Update: optionally rename with `*** Move to: new/path` on the line directly
below the header, then list change blocks.

## Change blocks (Update only)
A change block is up to 3 unchanged lines, the edit, then up to 3 unchanged
lines:

 unchanged line before
-line as it is now
+line as it should be
 unchanged line after

- Unchanged lines start with one space. An empty line in the file is an
  empty line in the patch.
- '-' and '+' are followed by the exact line text, indentation included.
- Put `@@` (optionally followed by a function or class name as a hint)
  between blocks that are far apart.
- Blocks go top to bottom in file order and never overlap.
- `*** End of File` ends an Update section early.

## Text fidelity
Copy lines exactly as they appear in the file. Keep quotes, backslashes and
tabs as they are; do not add escapes such as \n, \" or &quot; that are not in
the file, and never escape twice.

## Example
```patch
*** Begin Patch
*** Update File: app/config.py
 DEFAULTS = {
-    "retries": 3,
+    "retries": 5,
 }
@@ def load():
     path = find_config()
+    log.debug("loading %s", path)
     return parse(path)
*** Add File: app/VERSION
+1.4.0
*** Delete File: app/legacy.py
*** End Patch
```

Before replying, check: both envelope lines present, one section per path,
every unchanged line copied exactly.
"""
