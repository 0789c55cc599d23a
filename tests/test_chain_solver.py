import pytest
from pytest import approx

from iktree.mathutils import *
from iktree.frame import Target
from iktree.constraints import Hinge, BallAndSocket
from iktree.solver import KinematicError
from iktree.fabrik import ChainSolver, FABRIKSolver
from . import arm

params = dict(min_distance=1e-6, max_iterations=100, times_per_frame=100)

def test_reach():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain, Target(vec3(15,0,0)), **params)
	assert solver.length() == approx(20)
	while not solver.solve():
		pass
	assert solver.residual() <= solver.error
	assert chain[0].position() == O
	assert distance(chain[0].position(), chain[1].position()) == approx(10)
	assert distance(chain[1].position(), chain[2].position()) == approx(10)

def test_unreachable():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain, Target(vec3(25,0,0)), **params)
	while not solver.solve():
		pass
	assert solver.last_iteration == solver.max_iterations
	# the chain is stretched toward the target
	assert solver.residual() == approx(5, abs=1e-3)
	assert chain[-1].position().y == approx(0, abs=1e-3)

def test_monotonic():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain, Target(vec3(25,0,0)), max_iterations=30, times_per_frame=1)
	residuals = [solver.residual()]
	solver.subscribe(lambda event, residual=None, **data: residuals.append(residual) if event == 'iteration' else None)
	while not solver.solve():
		pass
	assert len(residuals) == 31
	for previous, current in zip(residuals, residuals[1:]):
		assert current <= previous + 1e-6

def test_monotonic_reachable():
	chain = arm(vec3(0,10,0), vec3(0,5,0), vec3(0,5,0), vec3(0,5,0))
	solver = ChainSolver(chain, Target(vec3(6,-8,9)), min_distance=1e-6, max_iterations=100, times_per_frame=1)
	residuals = [solver.residual()]
	solver.subscribe(lambda event, residual=None, **data: residuals.append(residual) if event == 'iteration' else None)
	while not solver.solve():
		pass
	assert len(residuals) > 2
	assert residuals[-1] < residuals[0] / 100
	for previous, current in zip(residuals, residuals[1:]):
		assert current <= previous + 1e-6

def test_idempotent():
	chain = arm(vec3(0,10,0), vec3(0,5,0), vec3(0,5,0))
	target = Target(vec3(3,12,4))
	solver = ChainSolver(chain, target, **params)
	while not solver.solve():
		pass
	rotations = [quat(joint.rotation) for joint in chain]
	assert solver.solve()
	assert [joint.rotation for joint in chain] == rotations
	# moving the head restarts the solver
	chain[0].translation = vec3(1,0,0)
	assert not solver.solve()

def test_constrained():
	hinges = [Hinge(-pi/3, pi/3), Hinge(-pi/3, pi/3)]
	chain = arm(vec3(0,10,0), vec3(0,10,0), constraints={0: hinges[0], 1: hinges[1]})
	solver = ChainSolver(chain, Target(vec3(6,17,0)), **params)
	iterations = []
	def check(event, iteration=None, positions=None, **data):
		if event == 'iteration':
			iterations.append(iteration)
			assert len(positions) == 3
		for joint, hinge in zip(chain, hinges):
			assert -pi/3 - 1e-9 <= hinge.angle(joint) <= pi/3 + 1e-9
	solver.subscribe(check)
	while not solver.solve():
		pass
	assert iterations == list(range(1, len(iterations)+1))
	assert solver.residual() < 1.

def test_cone_constrained():
	cone = BallAndSocket(pi/6, pi/6, pi/6, pi/6)
	chain = arm(vec3(0,10,0), vec3(0,10,0), vec3(0,10,0), constraints={1: cone})
	solver = ChainSolver(chain, Target(vec3(20,15,5)), **params)
	checks = []
	def check(event, **data):
		direction, twist = cone.decompose(chain[1])
		checks.append(cone.contains(direction))
	solver.subscribe(check)
	while not solver.solve():
		pass
	assert checks and all(checks)

def test_properties():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain, Target(vec3(15,0,0)), **params)
	assert solver.properties(chain[1]).use_constraint
	assert solver.properties(chain[1]) is solver.properties(chain[1])
	solver.set_fix_weight(0.5)
	assert all(solver.properties(joint).fix_weight == 0.5  for joint in chain)
	assert FABRIKSolver.move(O, vec3(0,4,0), 1.) == vec3(0,1,0)
	assert FABRIKSolver.move(O, vec3(0,4,0), 1., 0.5) == vec3(0,0.5,0)
	assert FABRIKSolver.move(X, X, 1.) == X
	solver.set_direction_weight(0.25)
	assert all(solver.properties(joint).use_direction_weight  for joint in chain)
	assert all(solver.properties(joint).direction_weight == 0.25  for joint in chain)
	assert not solver.keep_direction and not solver.fix_twisting

def test_unconstrained_joint():
	hinge = Hinge(0, 0)
	chain = arm(vec3(0,10,0), vec3(0,10,0), constraints={0: hinge})
	solver = ChainSolver(chain, Target(vec3(15,0,0)), **params)
	solver.properties(chain[0]).use_constraint = False
	while not solver.solve():
		pass
	assert solver.residual() <= solver.error

def test_target_direction():
	chain = arm(vec3(0,10,0), vec3(0,10,0), vec3(0,5,0))
	solver = ChainSolver(chain, Target(vec3(15,5,0)), **params)
	solver.target_direction = X
	while not solver.solve():
		pass
	assert solver.residual() <= solver.error
	assert dot(normalize(chain[3].position() - chain[2].position()), X) > 0.9

def test_keep_best():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	target = Target(vec3(25,0,0))
	solver = ChainSolver(chain, target, keep_best=True, max_iterations=5, times_per_frame=1)
	assert solver.best_distance == approx(distance(vec3(0,20,0), target.position()))
	while not solver.solve():
		pass
	assert solver.best_distance <= solver.residual() + 1e-9
	chain[0].rotation = angleAxis(1., Z)
	solver.restore_best()
	assert solver.residual() == approx(solver.best_distance)

def test_errors():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain)
	with pytest.raises(KinematicError):
		solver.set_target(chain[1], Target(vec3(1,0,0)))
	with pytest.raises(ValueError):
		ChainSolver([chain[2], chain[0]])
	assert not solver.solve()
	assert solver.state == 'converged'

def test_direction_weight():
	chain = arm(vec3(0,10,0), vec3(0,10,0))
	solver = ChainSolver(chain, **params)
	solver.reach_forward(vec3(5,20,0))
	# without weight, bones point to the desired positions
	assert solver.positions[1].x == approx(0.5279, abs=1e-3)
	solver = ChainSolver(chain, **params)
	solver.set_direction_weight(1.)
	solver.reach_forward(vec3(5,20,0))
	# full weight, bones keep their current direction
	assert distance(solver.positions[1], vec3(5,10,0)) == approx(0, abs=1e-9)
	assert distance(solver.positions[0], vec3(5,0,0)) == approx(0, abs=1e-9)

def test_keep_direction():
	chain = arm(vec3(0,10,0), vec3(0,10,0), constraints={1: Hinge()})
	solver = ChainSolver(chain, keep_direction=True, **params)
	solver.reach_forward(vec3(5,20,0))
	bone = solver.positions[1] - solver.positions[2]
	assert length(bone) == approx(10)
	assert anglebt(bone, -Y) == approx(atan2(5, 10) / 2)

	hinges = [Hinge(-pi/3, pi/3), Hinge(-pi/3, pi/3)]
	chain = arm(vec3(0,10,0), vec3(0,10,0), constraints={0: hinges[0], 1: hinges[1]})
	solver = ChainSolver(chain, Target(vec3(6,17,0)), keep_direction=True, **params)
	def check(event, **data):
		for joint, hinge in zip(chain, hinges):
			assert -pi/3 - 1e-9 <= hinge.angle(joint) <= pi/3 + 1e-9
	solver.subscribe(check)
	while not solver.solve():
		pass
	assert solver.residual() < 1.

def test_untwist():
	chain = arm(vec3(0,10,0), vec3(10,0,0))
	goal = vec3(0,10,10)
	before = distance(chain[-1].position(), goal)
	FABRIKSolver.untwist(chain, goal)
	# the head twists around its bone by a part of the quarter turn
	assert twistangle(chain[0].rotation, Y) == approx(-0.35*pi)
	assert distance(chain[1].position(), vec3(0,10,0)) == approx(0, abs=1e-9)
	assert distance(chain[-1].position(), goal) == approx(4.67, abs=1e-2)
	assert distance(chain[-1].position(), goal) < before
	# small twists are ignored
	chain = arm(vec3(0,10,0), vec3(10,0,0))
	FABRIKSolver.untwist(chain, vec3(10,10,1))
	assert chain[0].rotation == quat()

def test_fix_twisting():
	chain = arm(vec3(0,10,0), vec3(10,0,0))
	solver = ChainSolver(chain, Target(vec3(0,10,10)), fix_twisting=True, **params)
	while not solver.solve():
		pass
	assert solver.residual() <= solver.error
	assert distance(chain[0].position(), chain[1].position()) == approx(10)
