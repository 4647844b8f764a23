"""
fbxbin Demo Script

This script decodes a binary FBX file given on the command line, prints
the readable dump of all nodes and a short summary of the scene.

Usage:
    python fbxbin_demo.py <file.fbx>
"""

import sys
import numpy as np

import fbxbin

if len(sys.argv) != 2:
    print(__doc__)
    sys.exit(1)

fbx_file = sys.argv[1]

print("fbxbin Demo")
print("===========")

#-----------------
# 1. Debug output
#-----------------
print("\n1. Reading file in debug mode:")
print("------------------------------")
with fbxbin.File(fbx_file) as f:
    for line in f.read_debug(max_array_items=6):
        print(line)

#-----------------
# 2. Node access
#-----------------
print("\n2. Node access:")
print("---------------")
with fbxbin.File(fbx_file) as f:
    print(f"Version: {f.version}")
    print(f"Top-level nodes: {f.keys()}")

    objects = f["Objects"] if "Objects" in f.keys() else None
    if objects is not None:
        for geometry in objects.find_all("Geometry"):
            vertices = geometry.find("Vertices")
            if vertices is None:
                continue
            points = np.reshape(vertices[0], (-1, 3))
            print(f"Geometry {geometry[1]!r}: {len(points)} vertices")
            print(f"  Bounding box min: {points.min(axis=0)}")
            print(f"  Bounding box max: {points.max(axis=0)}")

print("\nDemo completed successfully!")
