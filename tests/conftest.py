"""In-memory Collection+JSON API served through ``httpx.MockTransport``."""

import asyncio
import base64
import json
import re

import httpx
import pytest

from chrisapi import BasicAuth, Client

BASE_URL = "http://testserver/api/v1/"
USERNAME = "cube"
PASSWORD = "cube1234"
TOKEN = "9c4b1a7e2f"


def cj_item(href, data, links=None):
    return {
        "href": href,
        "data": [{"name": name, "value": value} for name, value in data.items()],
        "links": [{"rel": rel, "href": url} for rel, url in (links or {}).items()],
    }


def cj_collection(href, items=(), links=None, template=None, queries=None, **extra):
    coll = {
        "version": "1.0",
        "href": href,
        "items": list(items),
        "links": [{"rel": rel, "href": url} for rel, url in (links or {}).items()],
    }
    if template is not None:
        coll["template"] = {"data": [{"name": name, "value": ""} for name in template]}
    if queries is not None:
        coll["queries"] = queries
    coll.update(extra)
    return {"collection": coll}


def search_query(href, names):
    return [{
        "rel": "search",
        "href": href + "search/",
        "data": [{"name": name, "value": ""} for name in names],
    }]


class FakeChrisServer:
    """Just enough of the REST API to exercise the client end to end."""

    def __init__(self):
        self.requests = []
        self.faults = {}
        self.omitted_entry_links = set()
        self._last_id = 100

        self.feeds = {
            i: {"id": i, "name": f"Feed {i}", "creation_date": f"2024-01-0{i}"}
            for i in range(1, 6)
        }
        self.comments = {}
        self.tags = {1: {"id": 1, "name": "brain", "color": "blue"}}
        self.taggings = {}
        self.plugins = {
            1: {"id": 1, "name": "pl-dircopy", "version": "2.1.1", "type": "fs"},
            2: {"id": 2, "name": "pl-simpledsapp", "version": "2.0.2", "type": "ds"},
        }
        self.plugin_instances = {}
        self.pipelines = {}
        self.pipings = {}
        self.pipeline_instances = {}
        self.uploaded_files = {}
        self.blobs = {}
        self.users = {1: {"id": 1, "username": USERNAME, "email": "cube@example.org"}}
        self.passwords = {USERNAME: PASSWORD}

        self.routes = [
            (r"/api/v1/", self.feed_list),
            (r"/api/v1/(\d+)/", self.feed_detail),
            (r"/api/v1/(\d+)/comments/", self.feed_comments),
            (r"/api/v1/(\d+)/taggings/", self.feed_taggings),
            (r"/api/v1/comments/(\d+)/", self.comment_detail),
            (r"/api/v1/tags/", self.tag_list),
            (r"/api/v1/tags/(\d+)/", self.tag_detail),
            (r"/api/v1/plugins/", self.plugin_list),
            (r"/api/v1/plugins/(\d+)/", self.plugin_detail),
            (r"/api/v1/plugins/(\d+)/parameters/", self.plugin_parameters),
            (r"/api/v1/plugins/(\d+)/instances/", self.plugin_instance_list),
            (r"/api/v1/plugins/instances/", self.all_plugin_instances),
            (r"/api/v1/pipelines/", self.pipeline_list),
            (r"/api/v1/pipelines/(\d+)/", self.pipeline_detail),
            (r"/api/v1/pipelines/(\d+)/plugins/", self.pipeline_plugins),
            (r"/api/v1/pipelines/(\d+)/pipings/", self.pipeline_pipings),
            (r"/api/v1/pipelines/(\d+)/parameters/", self.pipeline_default_parameters),
            (r"/api/v1/pipelines/(\d+)/instances/", self.pipeline_instance_list),
            (r"/api/v1/pipelines/instances/", self.all_pipeline_instances),
            (r"/api/v1/files/", self.empty_list),
            (r"/api/v1/uploadedfiles/", self.uploaded_file_list),
            (r"/api/v1/uploadedfiles/(\d+)/", self.uploaded_file_detail),
            (r"/api/v1/uploadedfiles/(\d+)/blob/", self.uploaded_file_blob),
            (r"/api/v1/users/(\d+)/", self.user_detail),
        ]

    # Plumbing

    def handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)

        fault = self.faults.pop((request.method, request.url.path), None)
        if fault is not None:
            raise fault("Simulated transport fault", request=request)

        path = request.url.path
        if path == "/api/v1/auth-token/":
            return self.auth_token(request)
        if path == "/api/v1/users/" and request.method == "POST":
            return self.create_user(request)

        if not self.authenticated(request):
            return httpx.Response(401, json={"detail": "Authentication credentials were not provided."})

        for pattern, handler in self.routes:
            match = re.fullmatch(pattern, path)
            if match:
                return handler(request, *[int(g) for g in match.groups()])
        return self.not_found()

    def authenticated(self, request):
        header = request.headers.get("Authorization", "")
        if header == f"Token {TOKEN}":
            return True
        if header.startswith("Basic "):
            username, _, password = base64.b64decode(header[6:]).decode().partition(":")
            return self.passwords.get(username) == password
        return False

    def requests_to(self, path, method="GET"):
        return [r for r in self.requests if r.url.path == path and r.method == method]

    def new_id(self):
        self._last_id += 1
        return self._last_id

    def not_found(self):
        return httpx.Response(404, json={"detail": "Not found."})

    def template_data(self, request):
        body = json.loads(request.content)
        return {d["name"]: d.get("value") for d in body["template"]["data"]}

    def page(self, request, href, records, to_item, links=None, template=None, search=None):
        params = request.url.params
        matches = list(records)
        if "id" in params:
            matches = [r for r in matches if str(r["id"]) == params["id"]]
        if "name" in params:
            matches = [r for r in matches if params["name"] in str(r.get("name", ""))]

        limit = int(params.get("limit", 10))
        offset = int(params.get("offset", 0))
        filters = {k: v for k, v in params.items() if k not in ("limit", "offset")}

        links = dict(links or {})
        if offset + limit < len(matches):
            links["next"] = str(httpx.URL(href, params={**filters, "limit": limit, "offset": offset + limit}))
        if offset > 0:
            links["previous"] = str(httpx.URL(href, params={**filters, "limit": limit, "offset": max(0, offset - limit)}))

        body = cj_collection(
            href,
            [to_item(r) for r in matches[offset:offset + limit]],
            links=links,
            template=template,
            queries=search_query(href, search) if search else None,
            total=len(matches),
        )
        return httpx.Response(200, json=body)

    def created(self, href, item):
        return httpx.Response(201, json=cj_collection(href, [item]))

    # Items

    def feed_item(self, feed):
        href = f"{BASE_URL}{feed['id']}/"
        return cj_item(href, feed, links={
            "comments": href + "comments/",
            "taggings": href + "taggings/",
            "note": href + "note/",
        })

    def comment_item(self, comment):
        return cj_item(f"{BASE_URL}comments/{comment['id']}/", comment, links={
            "feed": f"{BASE_URL}{comment['feed_id']}/",
        })

    def tag_item(self, tag):
        return cj_item(f"{BASE_URL}tags/{tag['id']}/", tag)

    def tagging_item(self, tagging):
        return cj_item(f"{BASE_URL}taggings/{tagging['id']}/", tagging, links={
            "tag": f"{BASE_URL}tags/{tagging['tag_id']}/",
            "feed": f"{BASE_URL}{tagging['feed_id']}/",
        })

    def plugin_item(self, plugin):
        href = f"{BASE_URL}plugins/{plugin['id']}/"
        return cj_item(href, plugin, links={
            "parameters": href + "parameters/",
            "instances": href + "instances/",
        })

    def plugin_instance_item(self, inst):
        return cj_item(f"{BASE_URL}plugins/instances/{inst['id']}/", inst, links={
            "plugin": f"{BASE_URL}plugins/{inst['plugin_id']}/",
        })

    def pipeline_item(self, pipeline):
        href = f"{BASE_URL}pipelines/{pipeline['id']}/"
        return cj_item(href, pipeline, links={
            "plugins": href + "plugins/",
            "plugin_pipings": href + "pipings/",
            "default_parameters": href + "parameters/",
            "instances": href + "instances/",
        })

    def pipeline_instance_item(self, inst):
        return cj_item(f"{BASE_URL}pipelines/instances/{inst['id']}/", inst, links={
            "pipeline": f"{BASE_URL}pipelines/{inst['pipeline_id']}/",
        })

    def uploaded_file_item(self, ufile):
        href = f"{BASE_URL}uploadedfiles/{ufile['id']}/"
        return cj_item(href, ufile, links={"file_resource": href + "blob/"})

    def user_item(self, user):
        return cj_item(f"{BASE_URL}users/{user['id']}/", user)

    # Handlers

    def feed_list(self, request):
        links = {
            "files": BASE_URL + "files/",
            "plugins": BASE_URL + "plugins/",
            "plugin_instances": BASE_URL + "plugins/instances/",
            "pipelines": BASE_URL + "pipelines/",
            "pipeline_instances": BASE_URL + "pipelines/instances/",
            "tags": BASE_URL + "tags/",
            "uploadedfiles": BASE_URL + "uploadedfiles/",
            "user": BASE_URL + "users/1/",
        }
        for rel in self.omitted_entry_links:
            links.pop(rel, None)
        return self.page(
            request, BASE_URL, self.feeds.values(), self.feed_item,
            links=links, search=("id", "name", "min_id", "max_id"),
        )

    def feed_detail(self, request, feed_id):
        feed = self.feeds.get(feed_id)
        if feed is None:
            return self.not_found()
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}{feed_id}/", [self.feed_item(feed)]))

    def feed_comments(self, request, feed_id):
        href = f"{BASE_URL}{feed_id}/comments/"
        if request.method == "POST":
            data = self.template_data(request)
            if not data.get("title"):
                return httpx.Response(400, json={"title": ["This field is required."]})
            comment = {"id": self.new_id(), "title": data["title"],
                       "content": data.get("content", ""), "feed_id": feed_id}
            self.comments[comment["id"]] = comment
            return self.created(href, self.comment_item(comment))
        records = [c for c in self.comments.values() if c["feed_id"] == feed_id]
        return self.page(request, href, records, self.comment_item,
                         links={"feed": f"{BASE_URL}{feed_id}/"}, template=("title", "content"))

    def comment_detail(self, request, comment_id):
        comment = self.comments.get(comment_id)
        if comment is None:
            return self.not_found()
        href = f"{BASE_URL}comments/{comment_id}/"
        if request.method == "DELETE":
            del self.comments[comment_id]
            return httpx.Response(204)
        if request.method == "PUT":
            comment.update(self.template_data(request))
        return httpx.Response(200, json=cj_collection(href, [self.comment_item(comment)],
                                                      template=("title", "content")))

    def feed_taggings(self, request, feed_id):
        href = f"{BASE_URL}{feed_id}/taggings/"
        if request.method == "POST":
            data = self.template_data(request)
            if data.get("tag_id") not in self.tags:
                return httpx.Response(400, json={"tag_id": ["Invalid pk - object does not exist."]})
            tagging = {"id": self.new_id(), "tag_id": data["tag_id"], "feed_id": feed_id}
            self.taggings[tagging["id"]] = tagging
            return self.created(href, self.tagging_item(tagging))
        records = [t for t in self.taggings.values() if t["feed_id"] == feed_id]
        return self.page(request, href, records, self.tagging_item)

    def tag_list(self, request):
        href = BASE_URL + "tags/"
        if request.method == "POST":
            data = self.template_data(request)
            tag = {"id": self.new_id(), "name": data.get("name", ""), "color": data["color"]}
            self.tags[tag["id"]] = tag
            return self.created(href, self.tag_item(tag))
        return self.page(request, href, self.tags.values(), self.tag_item, template=("name", "color"))

    def tag_detail(self, request, tag_id):
        tag = self.tags.get(tag_id)
        if tag is None:
            return self.not_found()
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}tags/{tag_id}/", [self.tag_item(tag)]))

    def plugin_list(self, request):
        return self.page(request, BASE_URL + "plugins/", self.plugins.values(), self.plugin_item,
                         search=("id", "name", "version", "type"))

    def plugin_detail(self, request, plugin_id):
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            return self.not_found()
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}plugins/{plugin_id}/",
                                                      [self.plugin_item(plugin)]))

    def plugin_parameters(self, request, plugin_id):
        href = f"{BASE_URL}plugins/{plugin_id}/parameters/"
        params = [
            {"id": 10 * plugin_id + i, "name": name, "type": "string", "optional": True}
            for i, name in enumerate(("dir", "prefix", "sleepLength"))
        ]
        return self.page(
            request, href, params,
            lambda p: cj_item(f"{BASE_URL}plugins/parameters/{p['id']}/", p),
            links={"plugin": f"{BASE_URL}plugins/{plugin_id}/"},
        )

    def plugin_instance_list(self, request, plugin_id):
        href = f"{BASE_URL}plugins/{plugin_id}/instances/"
        if request.method == "POST":
            data = self.template_data(request)
            inst = {"id": self.new_id(), "plugin_id": plugin_id, "status": "scheduled",
                    "title": data.get("title", ""), "previous_id": data.get("previous_id")}
            self.plugin_instances[inst["id"]] = inst
            return self.created(href, self.plugin_instance_item(inst))
        records = [i for i in self.plugin_instances.values() if i["plugin_id"] == plugin_id]
        return self.page(request, href, records, self.plugin_instance_item)

    def all_plugin_instances(self, request):
        return self.page(request, BASE_URL + "plugins/instances/", self.plugin_instances.values(),
                         self.plugin_instance_item)

    def pipeline_list(self, request):
        href = BASE_URL + "pipelines/"
        if request.method == "POST":
            data = self.template_data(request)
            if not data.get("plugin_tree") and not data.get("plugin_inst_id"):
                return httpx.Response(400, json={"non_field_errors": ["A plugin tree or instance is required."]})
            pipeline = {"id": self.new_id(), "name": data["name"], "locked": data.get("locked", True),
                        "plugin_tree": data.get("plugin_tree")}
            self.pipings[pipeline["id"]] = [
                {"id": self.new_id(), "plugin_id": node["plugin_id"], "previous_index": node["previous_index"]}
                for node in json.loads(data.get("plugin_tree") or "[]")
            ]
            self.pipelines[pipeline["id"]] = pipeline
            return self.created(href, self.pipeline_item(pipeline))
        return self.page(request, href, self.pipelines.values(), self.pipeline_item,
                         template=("name", "authors", "category", "description", "locked", "plugin_tree"))

    def pipeline_detail(self, request, pipeline_id):
        pipeline = self.pipelines.get(pipeline_id)
        if pipeline is None:
            return self.not_found()
        if request.method == "DELETE":
            del self.pipelines[pipeline_id]
            return httpx.Response(204)
        if request.method == "PUT":
            data = self.template_data(request)
            if "plugin_tree" in data:
                return httpx.Response(400, json={"plugin_tree": ["This field cannot be modified."]})
            pipeline.update(data)
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}pipelines/{pipeline_id}/",
                                                      [self.pipeline_item(pipeline)],
                                                      template=("name", "authors", "category", "description", "locked")))

    def pipeline_plugins(self, request, pipeline_id):
        plugin_ids = [p["plugin_id"] for p in self.pipings.get(pipeline_id, [])]
        return self.page(request, f"{BASE_URL}pipelines/{pipeline_id}/plugins/",
                         [self.plugins[i] for i in dict.fromkeys(plugin_ids)], self.plugin_item)

    def pipeline_pipings(self, request, pipeline_id):
        return self.page(
            request, f"{BASE_URL}pipelines/{pipeline_id}/pipings/", self.pipings.get(pipeline_id, []),
            lambda p: cj_item(f"{BASE_URL}pipelines/pipings/{p['id']}/", p, links={
                "pipeline": f"{BASE_URL}pipelines/{pipeline_id}/",
                "plugin": f"{BASE_URL}plugins/{p['plugin_id']}/",
            }),
        )

    def pipeline_default_parameters(self, request, pipeline_id):
        defaults = [
            {"id": 1000 + p["id"], "param_name": "dir", "default": "/incoming", "plugin_piping_id": p["id"]}
            for p in self.pipings.get(pipeline_id, [])
        ]
        return self.page(
            request, f"{BASE_URL}pipelines/{pipeline_id}/parameters/", defaults,
            lambda d: cj_item(f"{BASE_URL}pipelines/string-parameter/{d['id']}/", d),
        )

    def pipeline_instance_list(self, request, pipeline_id):
        href = f"{BASE_URL}pipelines/{pipeline_id}/instances/"
        if request.method == "POST":
            data = self.template_data(request)
            inst = {"id": self.new_id(), "pipeline_id": pipeline_id, "title": data.get("title", ""),
                    "previous_plugin_inst_id": data.get("previous_plugin_inst_id")}
            self.pipeline_instances[inst["id"]] = inst
            return self.created(href, self.pipeline_instance_item(inst))
        records = [i for i in self.pipeline_instances.values() if i["pipeline_id"] == pipeline_id]
        return self.page(request, href, records, self.pipeline_instance_item)

    def all_pipeline_instances(self, request):
        return self.page(request, BASE_URL + "pipelines/instances/", self.pipeline_instances.values(),
                         self.pipeline_instance_item)

    def empty_list(self, request):
        return self.page(request, BASE_URL + request.url.path[len("/api/v1/"):], [], lambda r: r)

    def uploaded_file_list(self, request):
        href = BASE_URL + "uploadedfiles/"
        if request.method == "POST":
            if not request.headers.get("Content-Type", "").startswith("multipart/form-data"):
                return httpx.Response(415, json={"detail": "Unsupported media type."})
            body = request.content
            path = re.search(rb'name="upload_path"\r\n\r\n(.*?)\r\n', body)
            blob = re.search(rb'name="fname"; filename="[^"]*"\r\n(?:[^\r\n]+\r\n)*\r\n(.*?)\r\n--', body, re.S)
            if path is None or blob is None:
                return httpx.Response(400, json={"fname": ["No file was submitted."]})
            ufile = {"id": self.new_id(), "upload_path": path.group(1).decode(), "fsize": len(blob.group(1))}
            self.uploaded_files[ufile["id"]] = ufile
            self.blobs[ufile["id"]] = blob.group(1)
            return self.created(href, self.uploaded_file_item(ufile))
        return self.page(request, href, self.uploaded_files.values(), self.uploaded_file_item,
                         template=("upload_path", "fname"))

    def uploaded_file_detail(self, request, file_id):
        ufile = self.uploaded_files.get(file_id)
        if ufile is None:
            return self.not_found()
        if request.method == "DELETE":
            del self.uploaded_files[file_id]
            return httpx.Response(204)
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}uploadedfiles/{file_id}/",
                                                      [self.uploaded_file_item(ufile)]))

    def uploaded_file_blob(self, request, file_id):
        if file_id not in self.blobs:
            return self.not_found()
        return httpx.Response(200, content=self.blobs[file_id],
                              headers={"Content-Type": "application/octet-stream"})

    def user_detail(self, request, user_id):
        user = self.users.get(user_id)
        if user is None:
            return self.not_found()
        if request.method == "PUT":
            data = self.template_data(request)
            if "email" in data and "@" not in data["email"]:
                return httpx.Response(400, json={"email": ["Enter a valid email address."]})
            user["email"] = data.get("email", user["email"])
            if "password" in data:
                self.passwords[user["username"]] = data["password"]
        return httpx.Response(200, json=cj_collection(f"{BASE_URL}users/{user_id}/", [self.user_item(user)],
                                                      template=("email", "password")))

    def create_user(self, request):
        data = self.template_data(request)
        errors = {}
        if "@" not in (data.get("email") or ""):
            errors["email"] = ["Enter a valid email address."]
        if data.get("username") in self.passwords:
            errors["username"] = ["A user with that username already exists."]
        if errors:
            return httpx.Response(400, json=errors)
        user = {"id": self.new_id(), "username": data["username"], "email": data["email"]}
        self.users[user["id"]] = user
        self.passwords[user["username"]] = data["password"]
        return self.created(BASE_URL + "users/", self.user_item(user))

    def auth_token(self, request):
        data = json.loads(request.content)
        if self.passwords.get(data.get("username")) != data.get("password"):
            return httpx.Response(400, json={"non_field_errors": ["Unable to log in with provided credentials."]})
        return httpx.Response(200, json={"token": TOKEN})


@pytest.fixture
def server():
    return FakeChrisServer()


@pytest.fixture
def http_client(server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handle))
    yield client
    asyncio.run(client.aclose())


@pytest.fixture
def auth():
    return BasicAuth(USERNAME, PASSWORD)


@pytest.fixture
def client(auth, http_client):
    return Client(BASE_URL, auth, http_client=http_client)
