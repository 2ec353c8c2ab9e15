from wave_amr.core.mesh import QuadMesh, children, parent


def test_refine_global():
    mesh = QuadMesh.hyper_cube().refine_global(2)
    assert mesh.n_active_cells == 16
    assert mesh.n_levels == 3
    assert set(mesh.levels) == {2}
    assert mesh.cell_bounds((2, 0, 0)) == (-1.0, -1.0, 0.5)


def test_parent_children_roundtrip():
    cell = (3, 5, 2)
    for child in children(cell):
        assert parent(child) == cell


def test_face_neighbors_uniform():
    mesh = QuadMesh.hyper_cube().refine_global(2)
    assert mesh.face_neighbors((2, 0, 0), 0) == []
    assert mesh.face_neighbors((2, 0, 0), 1) == [(2, 1, 0)]
    assert mesh.face_neighbors((2, 0, 0), 3) == [(2, 0, 1)]


def test_face_neighbors_across_level_change():
    mesh = QuadMesh.hyper_cube().refine_global(2).refine_and_coarsen({(2, 1, 1)}, set())
    # coarse cell to the right of the refined one sees two fine neighbours
    assert sorted(mesh.face_neighbors((2, 2, 1), 0)) == [(3, 3, 2), (3, 3, 3)]
    # fine cell sees the coarse one
    assert mesh.face_neighbors((3, 3, 2), 1) == [(2, 2, 1)]


def test_refinement_closure_keeps_balance():
    mesh = QuadMesh.hyper_cube().refine_global(2).refine_and_coarsen({(2, 0, 0)}, set())
    # refining (3,1,1) would put level 4 next to level 2 cells (2,1,0) and (2,0,1)
    new = mesh.refine_and_coarsen({(3, 1, 1)}, set())
    assert new.is_balanced()
    assert not new.is_active((2, 1, 0))
    assert not new.is_active((2, 0, 1))
    assert new.is_active((4, 2, 2))


def test_coarsen_complete_sibling_group():
    mesh = QuadMesh.hyper_cube().refine_global(2)
    group = set(children((1, 0, 0)))
    new = mesh.refine_and_coarsen(set(), group)
    assert new.n_active_cells == 13
    assert new.is_active((1, 0, 0))
    assert new.is_balanced()


def test_incomplete_group_is_not_coarsened():
    mesh = QuadMesh.hyper_cube().refine_global(2)
    group = set(list(children((1, 0, 0)))[:3])
    _, parents = mesh.prepare_coarsening_and_refinement(set(), group)
    assert parents == set()


def test_coarsening_blocked_by_finer_neighbour():
    mesh = QuadMesh.hyper_cube().refine_global(2).refine_and_coarsen({(2, 2, 0)}, set())
    _, parents = mesh.prepare_coarsening_and_refinement(set(), set(children((1, 0, 0))))
    assert parents == set()


def test_refine_flag_wins_over_coarsen():
    mesh = QuadMesh.hyper_cube().refine_global(2)
    group = set(children((1, 0, 0)))
    refine, parents = mesh.prepare_coarsening_and_refinement({(2, 0, 0)}, group)
    assert (2, 0, 0) in refine
    assert parents == set()


def test_locate_point():
    mesh = QuadMesh.hyper_cube().refine_global(1)
    # lattice centre lies on all four cells' closure; any active cell is valid
    cell = mesh.locate((1 << 29, 1 << 29))
    assert mesh.is_active(cell)
    assert mesh.locate((0, 0)) == (1, 0, 0)
