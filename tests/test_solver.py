import logging
import pytest

from iktree.mathutils import *
from iktree.solver import *
from iktree import settings
from . import arm


class Countdown(Solver):
	''' converges after a fixed number of iterations, or when its goal changes to 0 '''
	def __init__(self, steps, **kwargs):
		super().__init__(**kwargs)
		self.goal = steps
		self.steps = steps
		self.resets = 0
		self.updates = 0
		self._previous = steps

	def residual(self):
		return float(self.steps)

	def joint_positions(self):
		return []

	def _iterate(self):
		if self.steps <= 0:
			return True
		self.steps -= 1
		return False

	def _update(self):
		self.updates += 1

	def _changed(self):
		return self.goal != self._previous

	def _reset(self):
		self.resets += 1
		self._previous = self.goal
		self.steps = self.goal


def test_states():
	solver = Countdown(3, max_iterations=10, times_per_frame=1)
	assert solver.state == 'idle'
	assert not solver.solve()
	assert solver.state == 'iterating'
	assert solver.iterations == 1
	while not solver.solve():
		pass
	assert solver.state == 'converged'
	assert solver.iterations == solver.max_iterations
	assert solver.last_iteration == 3
	# nothing more is done once converged
	updates = solver.updates
	assert solver.solve()
	assert solver.updates == updates

def test_times_per_frame():
	solver = Countdown(100, max_iterations=1000, times_per_frame=3)
	solver.solve()
	assert solver.iterations == 3
	solver = Countdown(100, max_iterations=1000, times_per_frame=0.5)
	solver.solve()
	assert solver.iterations == 0
	solver.solve()
	assert solver.iterations == 1
	solver.solve()
	assert solver.iterations == 1

def test_budget():
	solver = Countdown(100, max_iterations=7, times_per_frame=5)
	assert not solver.solve()
	assert solver.iterations == 5
	assert not solver.solve()
	assert solver.iterations == 7
	assert solver.state == 'converged'
	assert solver.solve()

def test_immediate_convergence():
	solver = Countdown(0, max_iterations=10, times_per_frame=5)
	assert not solver.solve()
	assert solver.state == 'converged'
	assert solver.last_iteration == 0
	assert solver.solve()

def test_reset():
	solver = Countdown(2, max_iterations=10, times_per_frame=5)
	while not solver.solve():
		pass
	assert solver.resets == 0
	solver.goal = 4
	assert not solver.solve()
	assert solver.resets == 1
	assert solver.last_iteration == 4
	solver.change()
	assert not solver.solve()
	assert solver.resets == 2
	# a cancelled forced reset does nothing
	solver.change()
	solver.change(False)
	assert solver.solve()
	assert solver.resets == 2

def test_events():
	events = []
	def hook(event, **data):
		events.append((event, data.get('iteration')))
	solver = Countdown(2, max_iterations=10, times_per_frame=5)
	solver.subscribe(hook)
	solver.subscribe(hook)
	solver.solve()
	assert events == [('iteration', 1), ('iteration', 2), ('converged', 2)]
	solver.change()
	solver.solve()
	assert events[3] == ('reset', None)
	solver.unsubscribe(hook)
	solver.unsubscribe(hook)
	solver.change()
	solver.solve()
	assert len(events) == 7

def test_defaults():
	solver = Countdown(1)
	assert solver.error == settings.solver['error']
	assert solver.max_iterations == settings.solver['max_iterations']
	assert solver.min_distance == settings.solver['min_distance']
	assert solver.times_per_frame == settings.solver['times_per_frame']
	solver = Countdown(1, error=0.5)
	assert solver.error == 0.5

def test_check_chain():
	chain = arm(vec3(0,1,0), vec3(0,1,0))
	assert check_chain(chain) == chain
	with pytest.raises(ValueError):
		check_chain([chain[0], chain[2]])
	with pytest.raises(ValueError):
		check_chain([])
	assert issubclass(KinematicError, Exception)

def test_convergence_is_free():
	solver = Countdown(0, max_iterations=10, times_per_frame=1)
	solver.solve()
	assert solver.state == 'converged'
	assert solver.frame_counter == 1
	solver = Countdown(2, max_iterations=10, times_per_frame=3)
	solver.solve()
	assert solver.last_iteration == 2
	assert solver.frame_counter == 1

class Observed(Countdown):
	diagnostics = 0
	def residual(self):
		self.diagnostics += 1
		return super().residual()
	def joint_positions(self):
		self.diagnostics += 1
		return []

def test_lazy_diagnostics(caplog):
	caplog.set_level(logging.WARNING, logger='iktree.solver')
	solver = Observed(3, max_iterations=10, times_per_frame=10)
	solver.solve()
	assert solver.state == 'converged'
	assert solver.diagnostics == 0
	solver = Observed(3, max_iterations=10, times_per_frame=10)
	solver.subscribe(lambda event, **data: None)
	solver.solve()
	assert solver.diagnostics > 0
