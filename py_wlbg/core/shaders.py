"""GLSL sources for cone splatting."""

# Attribute 0 is the static cone geometry: xy offset in normalized canvas
# units (top-left origin, y down), z depth in [0, 1). Attributes 1 and 2 are
# per-instance: site position and encoded index color.
VORONOI_VERTEX = """
#version 330 core

layout(location = 0) in vec3 vertex;
layout(location = 1) in vec2 position;
layout(location = 2) in vec3 color;

flat out vec3 cellColor;

void main() {
    vec2 p = position + vertex.xy;
    gl_Position = vec4(2.0 * p.x - 1.0, 1.0 - 2.0 * p.y, 2.0 * vertex.z - 1.0, 1.0);
    cellColor = color;
}
"""

VORONOI_FRAGMENT = """
#version 330 core

flat in vec3 cellColor;

out vec4 fragColor;

void main() {
    fragColor = vec4(cellColor, 1.0);
}
"""
