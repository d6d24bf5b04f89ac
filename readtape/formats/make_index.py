#!/usr/bin/env python3

'''
    The block reader should not have to import every tape format
    to find the one it needs, so it looks the name up in index.py,
    and the names live with the implementation of each format.

    This is the program which builds that lookup facility.
'''


import glob
import importlib
import os


def main(srcdir=None, outdir=None):

    if srcdir is None:
        srcdir = os.path.dirname(os.path.abspath(__file__))
    if outdir is None:
        outdir = srcdir

    inventory = {}
    mods = {}

    def add_format(name, module, index):
        if name not in inventory:
            inventory[name] = []
        inventory[name].append((module, index))

    for fn in sorted(os.path.basename(x) for x in glob.glob(os.path.join(srcdir, "*.py"))):
        if fn in (
            "__init__.py",
            "index.py",
            "make_index.py",
        ):
            continue
        bn = fn[:-3]
        m = importlib.import_module("." + bn, "readtape.formats")
        for idx, fmt in enumerate(getattr(m, "ALL", ())):
            mods[(bn, idx)] = (fmt.name, fmt.aliases, fmt.__doc__, fmt.mode)
            add_format("all", bn, idx)
            add_format(fmt.name, bn, idx)
            for j in fmt.aliases:
                add_format(j, bn, idx)

    with open(os.path.join(outdir, "index.py"), "w") as file:
        file.write('#!/usr/bin/env python3\n')
        file.write('\n')
        file.write("''' MACHINE GENERATED FILE, see make_index.py'''\n")
        file.write('\n')

        file.write('documentation = {\n')
        for i, j in sorted(inventory.items()):
            mod = mods[j[0]]
            if i != mod[0]:
                continue
            file.write('    "%s": [\n' % i)
            for x, y in j:
                mod = mods[(x, y)]
                file.write('        %s,\n' % str([mod[2].strip()]))
            file.write('    ],\n')
        file.write('}\n')
        file.write('\n')

        file.write('aliases = {\n')
        for i, j in sorted(inventory.items()):
            mod = mods[j[0]]
            if i == mod[0] or i == "all":
                continue
            file.write('    "%s": [\n' % i)
            for x, y in j:
                mod = mods[(x, y)]
                file.write('        "%s",\n' % mod[0])
            file.write('    ],\n')
        file.write('}\n')
        file.write('\n')

        file.write('modes = {\n')
        for (modname, idx), mod in sorted(mods.items(), key=lambda x: x[1][3]):
            file.write('    %d: "%s",\n' % (mod[3], mod[0]))
        file.write('}\n')
        file.write('\n')

        file.write('def find_formats(target):\n')
        pfx = ""
        for i, j in sorted(inventory.items()):
            file.write('    %sif target == "%s":\n' % (pfx, i))
            pfx = "el"
            seen = set()
            for modname, idx in j:
                if modname not in seen:
                    file.write('        from . import %s\n' % modname)
                    seen.add(modname)
                clsname = mods[(modname, idx)][0]
                file.write('        yield ("%s", %s.ALL[%d])\n' % (clsname, modname, idx))
        file.write('\n')
        file.write('def find_mode(mode):\n')
        file.write('    for _name, cls in find_formats(modes.get(mode, "")):\n')
        file.write('        return cls\n')
        file.write('    return None\n')


if __name__ == "__main__":
    main()
