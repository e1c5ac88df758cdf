import subprocess
import tempfile
import os

from depgraph import DependencyGraph, extract_cells_and_ranges

def mermaid_to_image(mermaid_str, output_path):
    """
    Convert a Mermaid string to an image using mermaid-cli.

    :param mermaid_str: The Mermaid diagram text (string)
    :param output_path: Path (with extension .png or .svg) to write the resulting image
    """
    # Create a temporary file for the Mermaid code
    with tempfile.NamedTemporaryFile(suffix=".mmd", delete=False) as tmp:
        tmp.write(mermaid_str.encode("utf-8"))
        tmp_name = tmp.name

    try:
        subprocess.run([
            "mmdc",
            "-i", tmp_name,
            "-o", output_path
        ], check=True)
    finally:
        os.remove(tmp_name)

def build_sheet_graph(formulas):
    """Edges point from each referenced cell to the cell whose formula reads it."""
    graph = DependencyGraph()
    for cell, formula in formulas.items():
        graph.add_node(cell)
        refs = extract_cells_and_ranges(formula)
        for ref in refs.cells:
            graph.add_edge(ref, cell, "equational")
        for ref in refs.ranges:
            graph.add_edge(ref, cell, "range", {"range": ref})
    return graph

if __name__ == "__main__":
    sheet = {
        "Sheet1!B1": "=Sheet1!A1 * 2",
        "Sheet1!C1": "=Sheet1!A1 + Sheet1!B1",
        "Sheet1!D1": "=SUM(Sheet1!B1:C1)",
    }
    diagram = build_sheet_graph(sheet).to_mermaid()
    print(diagram)

    # Convert Mermaid string to 'diagram.png'
    mermaid_to_image(diagram, "diagram.png")
    print("Generated diagram.png")
