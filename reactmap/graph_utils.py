# Copyright 2019-2025, Relay Therapeutics
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import networkx as nx


def convert_to_nx(mol):
    """
    Convert an Chem.Mol into a networkx graph.

    Nodes are atom indices carrying the element symbol, edges carry the bond type.
    """
    g = nx.Graph()
    for atom in mol.GetAtoms():
        g.add_node(atom.GetIdx(), symbol=atom.GetSymbol())

    for bond in mol.GetBonds():
        src, dst = bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()
        g.add_edge(src, dst, bond_type=bond.GetBondType())

    return g


def fragment_sizes(graph: nx.Graph) -> list[int]:
    """Return the number of nodes in each connected component of the graph.

    Parameters
    ----------
    graph : networkx.Graph
        Input graph

    Returns
    -------
    list of int
        Component sizes, in the order networkx visits the components
    """
    return [len(component) for component in nx.connected_components(graph)]


def count_independent_cycles(graph: nx.Graph) -> int:
    """Return the circuit rank (number of independent cycles) of the graph, i.e. E - V + C"""
    return len(nx.cycle_basis(graph))


def count_induced_components(graph: nx.Graph, nodes) -> int:
    """Number of connected components of the subgraph induced by nodes"""
    return nx.number_connected_components(graph.subgraph(nodes))
